"""
Database layer

Supabase client plus the investigation store and credit ledger the
generation pipeline reads and writes.
"""

from .client import get_supabase_admin_client, verify_supabase_connection, SupabaseClientError
from .investigations import InvestigationService
from .credits import CreditService, InsufficientCreditsError

__all__ = [
    "get_supabase_admin_client",
    "verify_supabase_connection",
    "SupabaseClientError",
    "InvestigationService",
    "CreditService",
    "InsufficientCreditsError",
]
