"""External collaborators shared by request handlers.

Built once at application startup and stored on ``app.state`` so that
handlers receive them through dependencies instead of module globals.
"""

from dataclasses import dataclass

from supabase import Client

from src.core.config import Settings
from src.core.supabase import get_supabase_client
from src.repositories.card_repository import CardRepository
from src.storage.avatar_storage import AvatarStorage


@dataclass(frozen=True)
class Collaborators:
    """Store and blob-store clients for the card access controller."""

    client: Client
    cards: CardRepository
    avatars: AvatarStorage


def build_collaborators(settings: Settings) -> Collaborators:
    """Create the collaborator set from settings.

    Args:
        settings: Application settings.

    Returns:
        Collaborators: Repository and storage sharing one Supabase client.
    """
    client = get_supabase_client()
    return Collaborators(
        client=client,
        cards=CardRepository(client, table=settings.cards_table),
        avatars=AvatarStorage(client, bucket=settings.avatar_bucket),
    )
