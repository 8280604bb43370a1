"""
EditReconciler: merges one round of fixer edits into a single revised draft.

No model call is involved, so the same edits always yield the same draft.
Every incoming edit ends up either applied or skipped with a reason.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from briefing.models.dimensions import Dimension
from briefing.models.investigation import Draft
from briefing.models.refinement import (
    AppliedEdit,
    FixerResult,
    ReconciliationResult,
    SkippedEdit,
    SuggestedEdit,
)
from briefing.utils.logging import refinement_logger


AGREEMENT_BONUS = 0.5

SKIP_SECTION_NOT_FOUND = "section not found"
SKIP_TEXT_NOT_FOUND = "original text not found"
SKIP_SUPERSEDED = "superseded by higher-priority edit to same section"
SKIP_DUPLICATE = "duplicate of an edit from another fixer"


@dataclass(frozen=True)
class _Candidate:
    edit: SuggestedEdit
    dimension: Dimension
    confidence: float
    fixer_index: int
    edit_index: int
    agreement: int = 1

    @property
    def change_key(self) -> Tuple[str, str, str]:
        return (
            self.edit.section.strip().lower(),
            self.edit.original_text,
            self.edit.proposed_text,
        )

    @property
    def strength(self) -> float:
        bonus = AGREEMENT_BONUS * self.agreement if self.agreement > 1 else 0.0
        return self.edit.priority.weight + bonus

    def sort_key(self):
        return (-self.strength, -self.confidence, self.fixer_index, self.edit_index)


def _overlaps(span: Tuple[int, int], taken: List[Tuple[int, int]]) -> bool:
    start, end = span
    return any(start < t_end and t_start < end for t_start, t_end in taken)


class EditReconciler:
    """Applies the strongest non-conflicting edits and records why the rest were skipped."""

    def reconcile(self, draft: Draft, results: Sequence[FixerResult]) -> ReconciliationResult:
        candidates = [
            _Candidate(
                edit=edit,
                dimension=result.dimension,
                confidence=result.confidence,
                fixer_index=fixer_index,
                edit_index=edit_index,
            )
            for fixer_index, result in enumerate(results)
            for edit_index, edit in enumerate(result.edits)
        ]

        # Identical changes from several fixers count as agreement.
        agreement: Dict[Tuple[str, str, str], set] = {}
        for c in candidates:
            agreement.setdefault(c.change_key, set()).add(c.fixer_index)
        candidates = [
            _Candidate(
                edit=c.edit,
                dimension=c.dimension,
                confidence=c.confidence,
                fixer_index=c.fixer_index,
                edit_index=c.edit_index,
                agreement=len(agreement[c.change_key]),
            )
            for c in candidates
        ]
        candidates.sort(key=_Candidate.sort_key)

        applied: List[AppliedEdit] = []
        skipped: List[SkippedEdit] = []
        seen_changes = set()
        spans: Dict[str, List[Tuple[int, int]]] = {}
        replacements: Dict[str, List[Tuple[int, int, str]]] = {}

        for c in candidates:
            if c.change_key in seen_changes:
                skipped.append(SkippedEdit(c.edit, SKIP_DUPLICATE, c.dimension))
                continue

            section = draft.find_section(c.edit.section)
            if section is None:
                skipped.append(SkippedEdit(c.edit, SKIP_SECTION_NOT_FOUND, c.dimension))
                continue

            text = draft.sections[section]
            start = text.find(c.edit.original_text)
            if start == -1:
                skipped.append(SkippedEdit(c.edit, SKIP_TEXT_NOT_FOUND, c.dimension))
                continue

            span = (start, start + len(c.edit.original_text))
            taken = spans.setdefault(section, [])
            if _overlaps(span, taken):
                skipped.append(SkippedEdit(c.edit, SKIP_SUPERSEDED, c.dimension))
                continue

            taken.append(span)
            seen_changes.add(c.change_key)
            replacements.setdefault(section, []).append((span[0], span[1], c.edit.proposed_text))
            applied.append(AppliedEdit(c.edit, c.dimension, c.agreement))

        revised = draft
        for section, edits in replacements.items():
            text = draft.sections[section]
            # Right to left so earlier offsets stay valid.
            for start, end, proposed in sorted(edits, reverse=True):
                text = text[:start] + proposed + text[end:]
            revised = revised.with_section(section, text)

        refinement_logger.info(
            "Edits reconciled",
            applied=len(applied),
            skipped=len(skipped),
        )
        return ReconciliationResult(draft=revised, applied=tuple(applied), skipped=tuple(skipped))
