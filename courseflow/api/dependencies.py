from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from courseflow.db import engine
from courseflow.models.principal import Principal
from courseflow.repos.registry import Repos, memory_repos, pg_repos
from courseflow.services import token_service

logger = logging.getLogger(__name__)

# Tokens are issued by the upstream auth service; tokenUrl is only for the docs UI.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/oauth/token")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal.

    Used as a FastAPI dependency on any protected endpoint.
    """
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise _unauthorized("Invalid token") from None

    try:
        user_id = UUID(claims["sub"])
    except (TypeError, ValueError):
        logger.warning("Token rejected: sub is not a UUID")
        raise _unauthorized("Invalid token") from None

    principal = Principal(
        user_id=user_id,
        roles=frozenset(claims.get("roles", [])),
        name=claims.get("name", ""),
    )
    logger.debug(
        "Token validated for user=%s roles=%s",
        principal.user_id,
        principal.roles,
    )
    return principal


def require_role(role: str):
    """Dependency factory: demand a specific role.

    Usage: Depends(require_role("admin"))
    Returns the Principal if the role is present, else 403.
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_role(role):
            logger.warning(
                "Access denied: user=%s missing role=%s",
                principal.user_id,
                role,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


def require_any_role(roles: set[str]):
    """Dependency factory: demand at least one of the given roles.

    Usage: Depends(require_any_role({"admin", "instructor"}))
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_any_role(roles):
            logger.warning(
                "Access denied: user=%s has none of roles=%s",
                principal.user_id,
                roles,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


async def get_repos() -> AsyncGenerator[Repos, None]:
    """Request-scoped repositories.

    With DATABASE_URL set, every repo shares one session that commits when
    the handler returns and rolls back if it raises.  Without it the
    process-wide in-memory store is used.
    """
    if engine.async_session_factory is None:
        yield memory_repos()
        return
    async with engine.session_scope() as session:
        yield pg_repos(session)


CurrentUser = Annotated[Principal, Depends(require_user)]
RequestRepos = Annotated[Repos, Depends(get_repos)]
