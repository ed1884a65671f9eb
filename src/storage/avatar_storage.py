"""Avatar image storage in a Supabase Storage bucket."""

import logging

from supabase import Client

logger = logging.getLogger(__name__)

# Seconds browsers and the CDN may cache an avatar
AVATAR_CACHE_CONTROL = "3600"


class AvatarStorageError(Exception):
    """Raised when an avatar cannot be stored or its URL resolved."""


class AvatarStorage:
    """Stores avatar blobs and hands back their public URLs.

    The bucket knows nothing about cards; size and type limits are
    enforced by the caller.
    """

    def __init__(self, client: Client, bucket: str = "profile-avatars") -> None:
        self.client = client
        self.bucket = bucket

    async def upload(self, name: str, data: bytes, content_type: str) -> str:
        """Upload a new object and return its public URL.

        Uploads never overwrite: an existing object with the same name
        makes the upload fail.

        Args:
            name: Object name, unique per upload.
            data: File content bytes.
            content_type: MIME type stored with the object.

        Returns:
            str: Publicly resolvable URL of the stored object.

        Raises:
            AvatarStorageError: If the upload or URL lookup fails.
        """
        bucket = self.client.storage.from_(self.bucket)

        try:
            bucket.upload(
                path=name,
                file=data,
                file_options={
                    "content-type": content_type,
                    "cache-control": AVATAR_CACHE_CONTROL,
                    "upsert": "false",
                },
            )
        except Exception as e:
            raise AvatarStorageError(f"Failed to upload avatar {name}: {e}") from e

        try:
            public_url = bucket.get_public_url(name)
        except Exception as e:
            raise AvatarStorageError(f"Failed to resolve public URL for {name}: {e}") from e

        logger.info("Stored avatar %s in bucket %s", name, self.bucket)
        return public_url.rstrip("?")
