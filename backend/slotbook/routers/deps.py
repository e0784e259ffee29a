# backend/slotbook/routers/deps.py

from fastapi import Header, HTTPException, status


def get_actor_id(x_user_id: int | None = Header(default=None)) -> int:
    """Acting user, as established by the auth layer in front of the API."""
    if x_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header is required",
        )
    return x_user_id
