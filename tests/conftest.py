"""Pytest configuration and fixtures."""

import os
import time
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import MagicMock, patch

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi.testclient import TestClient

from tests.fakes import OWNER_ID, FakeAvatarStorage, InMemoryCardStore, make_card

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_SIGNING_KEY_JWK", "test-signing-key-jwk")


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    get_settings.cache_clear()
    settings = get_settings()
    yield settings
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def ec_private_key() -> ec.EllipticCurvePrivateKey:
    """Provide a P-256 key pair standing in for the Supabase signing key."""
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def signing_key(ec_private_key: ec.EllipticCurvePrivateKey) -> Generator[ec.EllipticCurvePrivateKey, None, None]:
    """Make token verification use the test key pair.

    Yields:
        The private key tokens should be signed with.
    """
    with patch(
        "src.api.middleware.auth.get_signing_key",
        return_value=ec_private_key.public_key(),
    ):
        yield ec_private_key


@pytest.fixture
def make_token(signing_key: ec.EllipticCurvePrivateKey) -> Callable[..., str]:
    """Provide a factory for ES256 tokens accepted by the auth middleware."""

    def _make_token(
        sub: str = OWNER_ID,
        email: str | None = "test@example.com",
        exp_offset: int = 3600,
        aud: str = "authenticated",
    ) -> str:
        now = int(time.time())
        payload = {
            "sub": sub,
            "email": email,
            "role": "authenticated",
            "exp": now + exp_offset,
            "iat": now,
            "aud": aud,
            "iss": "https://test-project.supabase.co/auth/v1",
        }
        return jwt.encode(payload, signing_key, algorithm="ES256")

    return _make_token


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client used when the app builds its collaborators.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with patch("src.core.collaborators.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def card_store() -> InMemoryCardStore:
    """Provide an in-memory store holding one primary card."""
    return InMemoryCardStore([make_card()])


@pytest.fixture
def avatar_storage() -> FakeAvatarStorage:
    """Provide a fake avatar storage."""
    return FakeAvatarStorage()


@pytest.fixture
def client(
    mock_supabase_client: MagicMock,
    card_store: InMemoryCardStore,
    avatar_storage: FakeAvatarStorage,
) -> Generator[TestClient, None, None]:
    """Provide a test client whose collaborators are in-memory fakes.

    Args:
        mock_supabase_client: Mocked Supabase client fixture.
        card_store: In-memory card store.
        avatar_storage: Fake avatar storage.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.api.deps import get_collaborators
    from src.core.collaborators import Collaborators
    from src.main import app

    app.dependency_overrides[get_collaborators] = lambda: Collaborators(
        client=mock_supabase_client,
        cards=card_store,
        avatars=avatar_storage,
    )
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
