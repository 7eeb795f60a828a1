"""
FastAPI dependencies for authentication.

Provides ``get_current_user_id``, used across all protected routes, and the
per-user rate limit guarding vault writes.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header

from api.dependencies import Services, get_services
from connectors.errors import RateLimitError
from connectors.ratelimit import WRITE_TOKEN_ACTION


async def get_current_user_id(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    services: Services = Depends(get_services),
) -> str:
    """
    Extract and verify the Bearer token, returning the authenticated
    ``user_id``.  Raises ``AuthenticationError`` (401) otherwise.
    """
    return services.identity.verify_header(authorization)


async def enforce_write_token_rate_limit(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> str:
    """
    Authenticate, then charge one vault write to the caller's hourly budget.

    Raises ``RateLimitError`` (429) once the budget is spent.
    """
    result = await services.rate_limiter.check(user_id, WRITE_TOKEN_ACTION)
    if not result.allowed:
        raise RateLimitError(
            "Rate limit exceeded. Please try again later.",
            retry_after=result.retry_after,
        )
    return user_id
