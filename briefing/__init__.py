"""Brief engine: multi-agent policy brief generation with consensus scoring."""

__version__ = "0.1.0"
