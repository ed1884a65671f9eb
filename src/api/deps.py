"""FastAPI dependency injection functions."""

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt
from src.core.collaborators import Collaborators
from src.core.config import get_settings
from src.schemas.auth import UserContext
from src.services.card_access import AccessPolicy, CardAccessController

logger = logging.getLogger(__name__)


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    This dependency requires a valid JWT token in the Authorization header.
    Use this for endpoints that require authentication.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        UserContext: The authenticated user's context.

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired.
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Extract the token from "Bearer <token>" format
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Expected: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = parts[1]

    try:
        payload = decode_jwt(token)
        return payload.to_user_context()

    except AuthError as e:
        if e.code == AuthErrorCode.TOKEN_EXPIRED:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
                headers={"WWW-Authenticate": "Bearer"},
            ) from e

        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_optional_user(
    authorization: Annotated[str | None, Header()] = None,
) -> UserContext | None:
    """Extract the current user if an Authorization header is present.

    Returns None if no token is provided. A token that is present but
    invalid still raises 401.

    Args:
        authorization: Optional Authorization header value.

    Returns:
        UserContext | None: The user context if authenticated, None otherwise.
    """
    if not authorization:
        return None

    return await get_current_user(authorization)


async def get_lenient_user(
    authorization: Annotated[str | None, Header()] = None,
) -> UserContext | None:
    """Extract the current user, treating an invalid token as no token.

    Used where the handler itself decides when a missing identity is
    reported, so that request validation errors can take precedence.

    Args:
        authorization: Optional Authorization header value.

    Returns:
        UserContext | None: The user context if the token is valid.
    """
    if not authorization:
        return None

    try:
        return await get_current_user(authorization)
    except HTTPException as e:
        logger.info("Ignoring invalid credential: %s", e.detail)
        return None


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[UserContext, Depends(get_current_user)]
OptionalUser = Annotated[UserContext | None, Depends(get_optional_user)]
LenientUser = Annotated[UserContext | None, Depends(get_lenient_user)]


def get_collaborators(request: Request) -> Collaborators:
    """Get the collaborators built at application startup.

    Args:
        request: FastAPI request object.

    Returns:
        Collaborators: Store and blob-store clients.
    """
    return request.app.state.collaborators


def get_card_access_controller(
    collaborators: Annotated[Collaborators, Depends(get_collaborators)],
) -> CardAccessController:
    """Build the card access controller for the current request.

    Args:
        collaborators: Shared store and blob-store clients.

    Returns:
        CardAccessController: Controller using the configured access policy.
    """
    return CardAccessController(
        cards=collaborators.cards,
        avatars=collaborators.avatars,
        policy=AccessPolicy.from_settings(get_settings()),
    )


CardAccess = Annotated[CardAccessController, Depends(get_card_access_controller)]
