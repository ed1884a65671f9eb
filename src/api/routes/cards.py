"""Business card API routes."""

import logging

from fastapi import APIRouter, File, Form, Query, UploadFile, status

from src.api.deps import CardAccess, CurrentUser, LenientUser, OptionalUser
from src.api.middleware.error_handler import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    BadRequestError,
    NotFoundError,
)
from src.schemas.card import (
    AvatarUploadResponse,
    CardUpdateRequest,
    CardView,
    VisibilityUpdateRequest,
)
from src.services.card_access import (
    MAX_AVATAR_SIZE_BYTES,
    AvatarUpload,
    CardAccessError,
    CardErrorCode,
    LookupMode,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cards", tags=["cards"])


def to_api_error(error: CardAccessError) -> APIError:
    """Map a rejected card operation onto the API error it is reported as.

    Args:
        error: The controller's rejection.

    Returns:
        APIError: Error carrying the HTTP status and error type.
    """
    code = error.code
    if code == CardErrorCode.BAD_REQUEST:
        return BadRequestError(error.message)
    if code == CardErrorCode.UNAUTHENTICATED:
        return AuthenticationError(error.message)
    if code == CardErrorCode.FORBIDDEN:
        return AuthorizationError(error.message)
    if code == CardErrorCode.NOT_FOUND:
        return NotFoundError(error.message)
    if code == CardErrorCode.INVALID_FILE_TYPE:
        return APIError(
            error.message,
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            error_type="invalid_file_type",
        )
    if code == CardErrorCode.TOO_LARGE:
        return APIError(
            error.message,
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            error_type="too_large",
        )
    if code == CardErrorCode.STORE_ERROR:
        # Detail was logged by the controller; clients get a generic message
        return APIError(
            "A storage error occurred",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_type="store_error",
        )
    return APIError(
        "An unexpected error occurred",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_type="internal_error",
    )


@router.get(
    "/me",
    response_model=CardView,
    summary="Get current user's primary card",
    description="Returns the authenticated user's primary card with every field.",
)
async def get_my_card(user: CurrentUser, controller: CardAccess) -> CardView:
    """Get the authenticated user's primary card.

    Args:
        user: The authenticated user context.
        controller: Card access controller.

    Returns:
        CardView: Owner view of the primary card.
    """
    try:
        card = await controller.resolve_card(user.user_id, LookupMode.BY_OWNER_PRIMARY)
    except CardAccessError as e:
        raise to_api_error(e) from e

    return controller.authorize_read(card, user.user_id)


@router.get(
    "/{identifier}",
    response_model=CardView,
    summary="Get a card",
    description="Returns the fields of a card the caller is allowed to see.",
    responses={
        200: {"description": "Card found"},
        404: {"description": "Card not found"},
    },
)
async def get_card(
    identifier: str,
    controller: CardAccess,
    user: OptionalUser,
    lookup: LookupMode = Query(
        default=LookupMode.BY_RECORD_ID,
        description="Whether identifier is a card id or an owner id",
    ),
) -> CardView:
    """Get the visible projection of a card.

    Anonymous viewers and non-owners only see visible, non-empty fields.

    Args:
        identifier: Card id or owner id.
        controller: Card access controller.
        user: The viewer, if a bearer token was sent.
        lookup: How to interpret identifier.

    Returns:
        CardView: The fields the viewer may see.
    """
    try:
        card = await controller.resolve_card(identifier, lookup)
    except CardAccessError as e:
        raise to_api_error(e) from e

    return controller.authorize_read(card, user.user_id if user else None)


@router.patch(
    "/{card_id}",
    response_model=CardView,
    summary="Update a card",
    description="Merges the given contact fields into a card owned by the caller.",
    responses={
        200: {"description": "Card updated"},
        400: {"description": "Unknown field or invalid value"},
        401: {"description": "Authentication required"},
        403: {"description": "Card belongs to another user"},
        404: {"description": "Card not found"},
    },
)
async def update_card(
    card_id: str,
    data: CardUpdateRequest,
    user: LenientUser,
    controller: CardAccess,
) -> CardView:
    """Update contact fields of the caller's card.

    The update map is validated before the caller's identity is checked.

    Args:
        card_id: Target card id.
        data: Field updates.
        user: The caller, None if the token is missing or invalid.
        controller: Card access controller.

    Returns:
        CardView: Owner view of the updated card.
    """
    try:
        card = await controller.authorize_write(
            card_id, user.user_id if user else None, data.updates
        )
    except CardAccessError as e:
        raise to_api_error(e) from e

    return controller.authorize_read(card, user.user_id)


@router.patch(
    "/{card_id}/visibility",
    response_model=CardView,
    summary="Update field visibility",
    description="Sets which contact fields non-owners may see.",
)
async def update_card_visibility(
    card_id: str,
    data: VisibilityUpdateRequest,
    user: LenientUser,
    controller: CardAccess,
) -> CardView:
    """Update per-field visibility of the caller's card.

    Args:
        card_id: Target card id.
        data: Visibility flags to merge.
        user: The caller, None if the token is missing or invalid.
        controller: Card access controller.

    Returns:
        CardView: Owner view of the updated card.
    """
    try:
        card = await controller.update_field_visibility(
            card_id, user.user_id if user else None, data.visibility
        )
    except CardAccessError as e:
        raise to_api_error(e) from e

    return controller.authorize_read(card, user.user_id)


@router.post(
    "/avatar",
    response_model=AvatarUploadResponse,
    summary="Upload an avatar",
    responses={
        200: {"description": "Avatar stored and card updated"},
        400: {"description": "File or user_id missing"},
        401: {"description": "Authentication required"},
        403: {"description": "Target user is not the caller"},
        404: {"description": "Primary card not found"},
        413: {"description": "File larger than 5 MB"},
        415: {"description": "File is not an image"},
    },
)
async def upload_avatar(
    controller: CardAccess,
    user: LenientUser,
    file: UploadFile | None = File(default=None, description="Image file (max 5MB)"),
    user_id: str | None = Form(default=None, description="Owner of the target primary card"),
) -> AvatarUploadResponse:
    """Upload a new avatar for the caller's primary card.

    The file is validated before the caller's identity is checked, so an
    oversized or non-image file is rejected the same way for everyone.

    Args:
        controller: Card access controller.
        user: The caller, None if the token is missing or invalid.
        file: Uploaded image.
        user_id: Owner id the upload targets.

    Returns:
        AvatarUploadResponse: The new avatar URL.
    """
    upload = None
    if file is not None:
        # One byte past the limit is enough to reject an oversized file
        data = await file.read(MAX_AVATAR_SIZE_BYTES + 1)
        upload = AvatarUpload(
            filename=file.filename,
            content_type=file.content_type,
            size=len(data),
            data=data,
        )

    logger.info("Upload avatar request for user_id=%s", user_id)

    try:
        avatar_url = await controller.authorize_avatar_upload(
            user.user_id if user else None,
            user_id,
            upload,
        )
    except CardAccessError as e:
        raise to_api_error(e) from e

    return AvatarUploadResponse(avatar_url=avatar_url)
