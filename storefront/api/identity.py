"""Request identity resolution for user-scoped endpoints."""

from __future__ import annotations

from fastapi import Header, HTTPException, status

USER_ID_HEADER = "X-User-Id"


async def get_current_user_id(
    x_user_id: str | None = Header(
        default=None,
        alias=USER_ID_HEADER,
        description="Authenticated user id forwarded by the auth gateway.",
    ),
) -> str:
    """Return the caller's user id or reject the request with 401."""

    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user_id
