"""Supabase-backed data access for business card rows."""

import logging
from typing import Any

from postgrest.exceptions import APIError as PostgrestAPIError
from supabase import Client

from src.models.card import BusinessCard

logger = logging.getLogger(__name__)

# Postgres "invalid_text_representation", e.g. a malformed uuid in a filter
INVALID_TEXT_REPRESENTATION = "22P02"


class CardStoreError(Exception):
    """Raised when the card table cannot be read or written."""


class CardRepository:
    """Point lookups and merge updates against the cards table.

    Lookups return the raw row list so callers can tell an empty result
    from an ambiguous one.
    """

    def __init__(self, client: Client, table: str = "business_cards") -> None:
        """Initialize the repository.

        Args:
            client: Supabase client used for PostgREST calls.
            table: Name of the cards table.
        """
        self.client = client
        self.table = table

    async def find_by_id(self, card_id: str) -> list[BusinessCard]:
        """Get rows whose id matches card_id.

        Args:
            card_id: The card's identifier.

        Returns:
            list[BusinessCard]: Matching rows (normally zero or one). A malformed
            id matches nothing.

        Raises:
            CardStoreError: If the query fails.
        """
        try:
            response = (
                self.client.table(self.table)
                .select("*")
                .eq("id", card_id)
                .execute()
            )
        except PostgrestAPIError as e:
            if e.code == INVALID_TEXT_REPRESENTATION:
                logger.info("Malformed card id %r: %s", card_id, e.message)
                return []
            raise CardStoreError(f"Failed to fetch card {card_id}: {e}") from e
        except Exception as e:
            raise CardStoreError(f"Failed to fetch card {card_id}: {e}") from e

        return response.data or []

    async def find_primary_by_owner(self, owner_id: str) -> list[BusinessCard]:
        """Get the rows marked primary for an owner.

        Args:
            owner_id: The auth user ID owning the card.

        Returns:
            list[BusinessCard]: Matching rows. More than one row means the
            at-most-one-primary constraint is not being enforced.

        Raises:
            CardStoreError: If the query fails.
        """
        try:
            response = (
                self.client.table(self.table)
                .select("*")
                .eq("user_id", owner_id)
                .eq("is_primary", True)
                .execute()
            )
        except PostgrestAPIError as e:
            if e.code == INVALID_TEXT_REPRESENTATION:
                logger.info("Malformed owner id %r: %s", owner_id, e.message)
                return []
            raise CardStoreError(f"Failed to fetch primary card for {owner_id}: {e}") from e
        except Exception as e:
            raise CardStoreError(f"Failed to fetch primary card for {owner_id}: {e}") from e

        return response.data or []

    async def merge_update(self, card_id: str, changes: dict[str, Any]) -> BusinessCard | None:
        """Set the given columns on a single card.

        Columns not named in changes keep their stored values.

        Args:
            card_id: The card's identifier.
            changes: Column name to new value.

        Returns:
            BusinessCard | None: The updated row, or None if no row matched.

        Raises:
            CardStoreError: If the update fails.
        """
        try:
            response = (
                self.client.table(self.table)
                .update(changes)
                .eq("id", card_id)
                .execute()
            )
        except Exception as e:
            raise CardStoreError(f"Failed to update card {card_id}: {e}") from e

        return response.data[0] if response.data else None
