"""Business card Pydantic schemas for API request/response models."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CardView(BaseModel):
    """Projection of a card that a particular viewer is allowed to see."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Card unique identifier")
    fields: dict[str, str | None] = Field(
        default_factory=dict, description="Contact fields visible to the viewer"
    )
    avatar_url: str | None = Field(default=None, description="Public URL of the avatar image")
    is_owner: bool = Field(default=False, description="Whether the viewer owns the card")
    can_edit: bool = Field(default=False, description="Whether the viewer may edit the card")
    has_avatar: bool = Field(default=False, description="Whether a custom avatar is set")
    field_visibility: dict[str, bool] | None = Field(
        default=None, description="Per-field visibility flags (owner only)"
    )


class CardUpdateRequest(BaseModel):
    """Request body for a partial contact-field update.

    Values are checked by the access controller so that unknown fields
    and wrong types come back as 400 rather than 422.
    """

    updates: dict[str, Any] = Field(..., description="Field name to new value")


class VisibilityUpdateRequest(BaseModel):
    """Request body for changing per-field visibility."""

    visibility: dict[str, Any] = Field(..., description="Field name to visible flag")


class AvatarUploadResponse(BaseModel):
    """Response for a successful avatar upload."""

    model_config = ConfigDict(from_attributes=True)

    success: bool = Field(default=True, description="Upload status")
    avatar_url: str = Field(description="Public URL of the new avatar")
