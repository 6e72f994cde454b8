"""Requester identity supplied by the upstream authentication gateway."""

from __future__ import annotations

from uuid import UUID

from fastapi import Header


async def get_requester_id(x_user_id: UUID = Header(..., alias="X-User-Id")) -> UUID:
    """FastAPI dependency returning the authenticated user id forwarded by the gateway."""
    return x_user_id
