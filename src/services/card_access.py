"""Ownership and field-visibility access control for business cards."""

import logging
import re
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from src.core.config import Settings
from src.models.card import CONTACT_FIELDS, BusinessCard
from src.repositories.card_repository import CardRepository, CardStoreError
from src.schemas.card import CardView
from src.storage.avatar_storage import AvatarStorage, AvatarStorageError

logger = logging.getLogger(__name__)

# Maximum avatar size (5 MiB)
MAX_AVATAR_SIZE_BYTES = 5 * 1024 * 1024

MUTABLE_FIELDS = frozenset(CONTACT_FIELDS)

_EXTENSION_RE = re.compile(r"^[a-z0-9]{1,10}$")


class LookupMode(str, Enum):
    """How an identifier passed to resolve_card is interpreted."""

    BY_RECORD_ID = "by_record_id"
    BY_OWNER_PRIMARY = "by_owner_primary"


class CardErrorCode(str, Enum):
    """Reasons a card operation is rejected."""

    BAD_REQUEST = "bad_request"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INVALID_FILE_TYPE = "invalid_file_type"
    TOO_LARGE = "too_large"
    STORE_ERROR = "store_error"
    UNKNOWN = "unknown"


class CardAccessError(Exception):
    """Card operation rejected with a specific error code.

    The code is stable so HTTP handlers and clients can branch on it.
    """

    def __init__(self, message: str, code: CardErrorCode) -> None:
        """Initialize card access error.

        Args:
            message: Human-readable error description.
            code: Specific error code for programmatic handling.
        """
        self.message = message
        self.code = code
        super().__init__(message)


@dataclass(frozen=True)
class AccessPolicy:
    """Deployment-wide access rules.

    Attributes:
        visibility_default_visible: Treat a field with no field_visibility
            entry as visible to non-owners. An explicit False always hides.
        editing_enabled: Allow owners to mutate their cards. False gives a
            read-only deployment.
    """

    visibility_default_visible: bool = False
    editing_enabled: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "AccessPolicy":
        return cls(
            visibility_default_visible=settings.visibility_default_visible,
            editing_enabled=settings.card_editing_enabled,
        )


@dataclass(frozen=True)
class AvatarUpload:
    """An uploaded avatar file as received from the client."""

    filename: str | None
    content_type: str | None
    size: int
    data: bytes

    @property
    def extension(self) -> str:
        """File extension from the filename, else from the content type.

        Only short lowercase alphanumeric extensions are used, so the
        client cannot add path segments or URL syntax to the object name.
        """
        candidates = []
        if self.filename and "." in self.filename:
            candidates.append(self.filename.rsplit(".", 1)[-1].lower())
        if self.content_type and "/" in self.content_type:
            candidates.append(self.content_type.split("/", 1)[1].split("+", 1)[0].lower())
        for candidate in candidates:
            if _EXTENSION_RE.match(candidate):
                return candidate
        return "img"


def _normalize_id(value: str | UUID | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _is_owner(card: Mapping[str, Any], principal_id: str | None) -> bool:
    owner_id = _normalize_id(card.get("user_id"))
    return principal_id is not None and owner_id is not None and principal_id == owner_id


class CardAccessController:
    """Resolves cards and decides who may read or mutate them.

    The controller owns no state of its own; every decision is made from
    the card row, the caller identity and the access policy.
    """

    def __init__(
        self,
        cards: CardRepository,
        avatars: AvatarStorage,
        policy: AccessPolicy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the controller.

        Args:
            cards: Card table repository.
            avatars: Avatar blob storage.
            policy: Access rules; defaults to visibility-aware and editable.
            clock: Returns the current time in seconds, used for avatar names.
        """
        self.cards = cards
        self.avatars = avatars
        self.policy = policy or AccessPolicy()
        self.clock = clock

    async def resolve_card(
        self,
        identifier: str | UUID | None,
        mode: LookupMode = LookupMode.BY_RECORD_ID,
    ) -> BusinessCard:
        """Find exactly one card by record id or by owner's primary card.

        Args:
            identifier: A card id or an owner id, depending on mode.
            mode: Which lookup to perform.

        Returns:
            dict: The matching card row.

        Raises:
            CardAccessError: BAD_REQUEST for a blank identifier, NOT_FOUND
                when zero or several rows match, STORE_ERROR if the store fails,
                UNKNOWN if the store raises anything else.
        """
        key = _normalize_id(identifier)
        if key is None:
            raise CardAccessError("Card identifier is required", CardErrorCode.BAD_REQUEST)

        try:
            if mode == LookupMode.BY_OWNER_PRIMARY:
                rows = await self.cards.find_primary_by_owner(key)
            else:
                rows = await self.cards.find_by_id(key)
        except CardStoreError as e:
            logger.error("Card lookup failed (%s=%s): %s", mode.value, key, e)
            raise CardAccessError("Failed to load card", CardErrorCode.STORE_ERROR) from e
        except Exception as e:
            logger.exception("Unexpected error looking up card (%s=%s)", mode.value, key)
            raise CardAccessError("An unexpected error occurred", CardErrorCode.UNKNOWN) from e

        if len(rows) > 1:
            logger.error(
                "Ambiguous card lookup (%s=%s): %d rows matched",
                mode.value,
                key,
                len(rows),
            )
        if len(rows) != 1:
            raise CardAccessError("Card not found", CardErrorCode.NOT_FOUND)

        return rows[0]

    def authorize_read(
        self,
        card: Mapping[str, Any] | None,
        viewer_id: str | UUID | None = None,
    ) -> CardView:
        """Project a card onto the fields a viewer may see.

        The owner sees every contact field. Anyone else sees a field only
        if it is non-empty and its visibility flag is True, or the flag is
        absent and the policy shows absent flags by default.

        Args:
            card: The card row.
            viewer_id: Identity of the viewer, None for anonymous.

        Returns:
            CardView: The visible projection.

        Raises:
            CardAccessError: BAD_REQUEST if no card was given.
        """
        if card is None:
            raise CardAccessError("Card is required", CardErrorCode.BAD_REQUEST)

        viewer = _normalize_id(viewer_id)
        is_owner = _is_owner(card, viewer)
        visibility = card.get("field_visibility")
        if not isinstance(visibility, Mapping):
            visibility = {}

        if is_owner:
            fields = {name: card.get(name) for name in CONTACT_FIELDS}
        else:
            fields = {}
            for name in CONTACT_FIELDS:
                value = card.get(name)
                if not isinstance(value, str) or not value.strip():
                    continue
                flag = visibility.get(name)
                if flag is True or (flag is None and self.policy.visibility_default_visible):
                    fields[name] = value

        avatar_url = card.get("avatar_url")
        return CardView(
            id=str(card.get("id")),
            fields=fields,
            avatar_url=avatar_url,
            is_owner=is_owner,
            can_edit=is_owner and self.policy.editing_enabled,
            has_avatar=isinstance(avatar_url, str) and avatar_url.startswith("http"),
            field_visibility=dict(visibility) if is_owner else None,
        )

    async def authorize_write(
        self,
        card_id: str | UUID | None,
        caller_id: str | UUID | None,
        updates: Mapping[str, Any] | None,
    ) -> BusinessCard:
        """Merge contact-field updates into a card owned by the caller.

        Args:
            card_id: Target card id.
            caller_id: Authenticated caller, None if unauthenticated.
            updates: Contact field name to new string value (or None to clear).

        Returns:
            dict: The card row after the update.

        Raises:
            CardAccessError: BAD_REQUEST, UNAUTHENTICATED, NOT_FOUND,
                FORBIDDEN or STORE_ERROR, checked in that order.
        """
        changes = self._validate_field_updates(updates)
        card = await self._load_owned_card(card_id, caller_id)
        return await self._apply(card, changes)

    async def update_field_visibility(
        self,
        card_id: str | UUID | None,
        caller_id: str | UUID | None,
        visibility: Mapping[str, Any] | None,
    ) -> BusinessCard:
        """Merge per-field visibility flags into a card owned by the caller.

        Args:
            card_id: Target card id.
            caller_id: Authenticated caller, None if unauthenticated.
            visibility: Contact field name to visible flag.

        Returns:
            dict: The card row after the update.

        Raises:
            CardAccessError: Same codes and order as authorize_write.
        """
        flags = self._validate_visibility(visibility)
        card = await self._load_owned_card(card_id, caller_id)

        current = card.get("field_visibility")
        merged = dict(current) if isinstance(current, Mapping) else {}
        merged.update(flags)
        return await self._apply(card, {"field_visibility": merged})

    async def authorize_avatar_upload(
        self,
        caller_id: str | UUID | None,
        target_owner_id: str | UUID | None,
        upload: AvatarUpload | None,
    ) -> str:
        """Store a new avatar and point the owner's primary card at it.

        Validation fails fast in this order: missing input, file type, file
        size, authentication, ownership, primary card existence, editing
        policy. The card is only updated after the blob is stored.

        Args:
            caller_id: Authenticated caller, None if unauthenticated.
            target_owner_id: Owner whose primary card receives the avatar.
            upload: The uploaded file.

        Returns:
            str: Public URL of the stored avatar.

        Raises:
            CardAccessError: With the code of the first failing check, or
                STORE_ERROR if storing the blob or updating the card fails.
        """
        target = _normalize_id(target_owner_id)
        if upload is None or target is None:
            raise CardAccessError("File and user_id are required", CardErrorCode.BAD_REQUEST)

        if not upload.content_type or not upload.content_type.startswith("image/"):
            raise CardAccessError("File must be an image", CardErrorCode.INVALID_FILE_TYPE)

        if upload.size > MAX_AVATAR_SIZE_BYTES:
            raise CardAccessError(
                f"File size must be at most {MAX_AVATAR_SIZE_BYTES // (1024 * 1024)} MB",
                CardErrorCode.TOO_LARGE,
            )

        caller = _normalize_id(caller_id)
        if caller is None:
            raise CardAccessError("Authentication required", CardErrorCode.UNAUTHENTICATED)

        if caller != target:
            logger.warning("User %s tried to upload an avatar for %s", caller, target)
            raise CardAccessError(
                "You can only update your own avatar", CardErrorCode.FORBIDDEN
            )

        card = await self.resolve_card(target, LookupMode.BY_OWNER_PRIMARY)
        self._check_editing_enabled()

        name = f"{target}-{int(self.clock() * 1000)}-{uuid4().hex[:8]}.{upload.extension}"
        try:
            avatar_url = await self.avatars.upload(name, upload.data, upload.content_type)
        except AvatarStorageError as e:
            logger.error("Avatar upload failed for %s: %s", target, e)
            raise CardAccessError("Failed to upload image", CardErrorCode.STORE_ERROR) from e
        except Exception as e:
            logger.exception("Unexpected error uploading avatar for %s", target)
            raise CardAccessError("An unexpected error occurred", CardErrorCode.UNKNOWN) from e

        await self._apply(card, {"avatar_url": avatar_url})
        return avatar_url

    def _validate_field_updates(self, updates: Mapping[str, Any] | None) -> dict[str, Any]:
        if not isinstance(updates, Mapping) or not updates:
            raise CardAccessError("No fields to update", CardErrorCode.BAD_REQUEST)

        unknown = sorted(str(name) for name in updates if name not in MUTABLE_FIELDS)
        if unknown:
            raise CardAccessError(
                f"Fields cannot be updated: {', '.join(unknown)}",
                CardErrorCode.BAD_REQUEST,
            )

        for name, value in updates.items():
            if value is not None and not isinstance(value, str):
                raise CardAccessError(
                    f"Field '{name}' must be a string or null",
                    CardErrorCode.BAD_REQUEST,
                )

        return dict(updates)

    def _validate_visibility(self, visibility: Mapping[str, Any] | None) -> dict[str, bool]:
        if not isinstance(visibility, Mapping) or not visibility:
            raise CardAccessError("No visibility flags to update", CardErrorCode.BAD_REQUEST)

        unknown = sorted(str(name) for name in visibility if name not in MUTABLE_FIELDS)
        if unknown:
            raise CardAccessError(
                f"Unknown fields: {', '.join(unknown)}", CardErrorCode.BAD_REQUEST
            )

        for name, flag in visibility.items():
            if not isinstance(flag, bool):
                raise CardAccessError(
                    f"Visibility of '{name}' must be true or false",
                    CardErrorCode.BAD_REQUEST,
                )

        return dict(visibility)

    async def _load_owned_card(
        self,
        card_id: str | UUID | None,
        caller_id: str | UUID | None,
    ) -> BusinessCard:
        caller = _normalize_id(caller_id)
        if caller is None:
            raise CardAccessError("Authentication required", CardErrorCode.UNAUTHENTICATED)

        # Existence before ownership: a missing card is 404, someone else's is 403
        card = await self.resolve_card(card_id, LookupMode.BY_RECORD_ID)

        if not _is_owner(card, caller):
            logger.warning("User %s tried to modify card %s", caller, card.get("id"))
            raise CardAccessError(
                "You can only update your own profile", CardErrorCode.FORBIDDEN
            )

        self._check_editing_enabled()
        return card

    def _check_editing_enabled(self) -> None:
        if not self.policy.editing_enabled:
            raise CardAccessError("Card editing is disabled", CardErrorCode.FORBIDDEN)

    async def _apply(self, card: Mapping[str, Any], changes: dict[str, Any]) -> BusinessCard:
        card_id = str(card["id"])
        try:
            updated = await self.cards.merge_update(card_id, changes)
        except CardStoreError as e:
            logger.error("Card update failed for %s: %s", card_id, e)
            raise CardAccessError("Failed to update profile", CardErrorCode.STORE_ERROR) from e
        except Exception as e:
            logger.exception("Unexpected error updating card %s", card_id)
            raise CardAccessError("An unexpected error occurred", CardErrorCode.UNKNOWN) from e

        if updated is None:
            # Row vanished between lookup and update
            raise CardAccessError("Card not found", CardErrorCode.NOT_FOUND)

        logger.info("Updated card %s (%s)", card_id, ", ".join(sorted(changes)))
        return updated
