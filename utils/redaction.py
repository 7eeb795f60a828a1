"""
Helpers for keeping identifiers and secrets out of logs.
"""

from __future__ import annotations

from typing import Optional


def redact_id(value: Optional[str], keep: int = 8) -> str:
    """Truncate an identifier for logging: ``'3f2a9c1e...'``."""
    if not value:
        return "<none>"
    return value[:keep] + "..." if len(value) > keep else value
