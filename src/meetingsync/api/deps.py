"""FastAPI dependency injection for authentication and app.state components.

These dependencies are used in endpoint function signatures to inject the
authenticated user. Components built in the lifespan (repositories, the
scheduling core, the notifier) live on app.state and are fetched with
get_component(), which answers 503 when one is missing.
"""

from __future__ import annotations

from typing import Any

from fastapi import Depends, HTTPException, Request, status

from src.meetingsync.core.security import verify_token
from src.meetingsync.users.schemas import User


def get_component(request: Request, name: str, label: str) -> Any:
    """Retrieve a component from app.state, 503 if not available."""
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return component


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


async def get_current_user(request: Request) -> User:
    """Extract and validate the current user from the Bearer JWT.

    Raises:
        HTTPException(401): If no valid token is provided or the user is gone.
    """
    token = _bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = verify_token(token, token_type="access")

    users = get_component(request, "user_repository", "User repository")
    user = await users.get_user(payload["sub"])
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


async def get_optional_user(request: Request) -> User | None:
    """Like get_current_user, but anonymous requests yield None."""
    if _bearer_token(request) is None:
        return None
    return await get_current_user(request)


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """Raises HTTPException(403) unless the user is an admin."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user
