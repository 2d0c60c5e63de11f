"""
Identity dependencies for FastAPI routes.

The frontend forwards the signed-in user's id in the X-User-Id header.
Requests without it run in demo mode (owner ``None``).
"""
from __future__ import annotations

from typing import Optional

from fastapi import Header


async def get_optional_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> Optional[str]:
    """Extract user ID if present, return None for demo mode."""
    return (x_user_id or "").strip() or None
