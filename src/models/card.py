"""Business card model type definitions for database operations."""

from typing import TypedDict

# Contact attributes a card carries. Order is the display order.
CONTACT_FIELDS: tuple[str, ...] = (
    "name",
    "title",
    "company",
    "email",
    "phone",
    "website",
    "bio",
    "twitter",
    "instagram",
    "linkedin",
    "tiktok",
    "youtube",
)


class BusinessCard(TypedDict, total=False):
    """Business card table row representation.

    Maps directly to the business_cards table. id, user_id and is_primary
    are always present on rows read from the store; contact fields may be
    missing from partial selects.
    """

    id: str
    user_id: str
    is_primary: bool
    avatar_url: str | None
    field_visibility: dict[str, bool] | None
    name: str | None
    title: str | None
    company: str | None
    email: str | None
    phone: str | None
    website: str | None
    bio: str | None
    twitter: str | None
    instagram: str | None
    linkedin: str | None
    tiktok: str | None
    youtube: str | None
