"""
Shared utilities for vignette-builder.

Common functionality used across contexts:
- Logger setup with provenance
- Build event log
- Timestamps
"""

from vignette_builder.utils.timestamp import now, now_exact

__all__ = ["now", "now_exact"]
