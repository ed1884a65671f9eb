"""Unit tests for FastAPI dependency injection functions."""

import time
from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException

from src.api.deps import (
    get_card_access_controller,
    get_current_user,
    get_lenient_user,
    get_optional_user,
)
from src.api.middleware.auth import AuthError, AuthErrorCode
from src.core.collaborators import Collaborators
from src.schemas.auth import TokenPayload, UserContext
from tests.fakes import OWNER_ID, FakeAvatarStorage, InMemoryCardStore


def token_payload() -> TokenPayload:
    now = int(time.time())
    return TokenPayload(
        sub=OWNER_ID,
        email="test@example.com",
        role="authenticated",
        exp=now + 3600,
        iat=now,
    )


class TestGetCurrentUser:
    """Tests for get_current_user dependency."""

    @pytest.mark.asyncio
    @patch("src.api.deps.decode_jwt")
    async def test_extracts_user_context_correctly(self, mock_decode: MagicMock) -> None:
        """Test get_current_user extracts UserContext from valid token."""
        mock_decode.return_value = token_payload()

        user = await get_current_user("Bearer valid-token")

        assert isinstance(user, UserContext)
        assert user.user_id == OWNER_ID
        assert user.email == "test@example.com"
        mock_decode.assert_called_once_with("valid-token")

    @pytest.mark.asyncio
    async def test_raises_401_for_missing_header(self) -> None:
        """Test get_current_user raises 401 when Authorization header is missing."""
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("")

        assert exc_info.value.status_code == 401
        assert "Authorization header required" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_raises_401_for_invalid_header_format(self) -> None:
        """Test get_current_user raises 401 for invalid header format."""
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("invalid-token")

        assert exc_info.value.status_code == 401
        assert "Invalid authorization header format" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_raises_401_for_wrong_scheme(self) -> None:
        """Test get_current_user raises 401 for non-Bearer scheme."""
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("Basic some-credentials")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    @patch("src.api.deps.decode_jwt")
    async def test_raises_401_for_expired_token(self, mock_decode: MagicMock) -> None:
        """Test get_current_user raises 401 for expired token."""
        mock_decode.side_effect = AuthError("Token has expired", AuthErrorCode.TOKEN_EXPIRED)

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("Bearer expired-token")

        assert exc_info.value.status_code == 401
        assert "expired" in exc_info.value.detail.lower()


class TestGetOptionalUser:
    """Tests for get_optional_user dependency."""

    @pytest.mark.asyncio
    async def test_returns_none_for_missing_header(self) -> None:
        """Test get_optional_user returns None when no Authorization header."""
        assert await get_optional_user(None) is None

    @pytest.mark.asyncio
    @patch("src.api.deps.decode_jwt")
    async def test_returns_user_context_for_valid_token(self, mock_decode: MagicMock) -> None:
        """Test get_optional_user returns UserContext for valid token."""
        mock_decode.return_value = token_payload()

        user = await get_optional_user("Bearer valid-token")

        assert user is not None
        assert user.user_id == OWNER_ID

    @pytest.mark.asyncio
    @patch("src.api.deps.decode_jwt")
    async def test_raises_401_for_invalid_token(self, mock_decode: MagicMock) -> None:
        """Test get_optional_user raises 401 if token is present but invalid."""
        mock_decode.side_effect = AuthError("Invalid token", AuthErrorCode.INVALID_TOKEN)

        with pytest.raises(HTTPException) as exc_info:
            await get_optional_user("Bearer invalid-token")

        assert exc_info.value.status_code == 401


class TestGetLenientUser:
    """Tests for get_lenient_user dependency."""

    @pytest.mark.asyncio
    @patch("src.api.deps.decode_jwt")
    async def test_returns_none_for_invalid_token(self, mock_decode: MagicMock) -> None:
        """Test get_lenient_user treats an invalid token as anonymous."""
        mock_decode.side_effect = AuthError("Invalid token signature", AuthErrorCode.INVALID_SIGNATURE)

        assert await get_lenient_user("Bearer forged-token") is None

    @pytest.mark.asyncio
    async def test_returns_none_for_malformed_header(self) -> None:
        """Test get_lenient_user treats a malformed header as anonymous."""
        assert await get_lenient_user("token-without-scheme") is None

    @pytest.mark.asyncio
    @patch("src.api.deps.decode_jwt")
    async def test_returns_user_context_for_valid_token(self, mock_decode: MagicMock) -> None:
        """Test get_lenient_user returns the user for a valid token."""
        mock_decode.return_value = token_payload()

        user = await get_lenient_user("Bearer valid-token")

        assert user is not None
        assert user.user_id == OWNER_ID


class TestGetCardAccessController:
    """Tests for get_card_access_controller dependency."""

    @patch("src.api.deps.get_settings")
    def test_uses_shared_collaborators_and_policy(self, mock_settings: MagicMock) -> None:
        """Test the controller is wired to app collaborators and settings policy."""
        mock_settings.return_value.visibility_default_visible = True
        mock_settings.return_value.card_editing_enabled = False
        collaborators = Collaborators(
            client=MagicMock(),
            cards=InMemoryCardStore(),
            avatars=FakeAvatarStorage(),
        )

        controller = get_card_access_controller(collaborators)

        assert controller.cards is collaborators.cards
        assert controller.avatars is collaborators.avatars
        assert controller.policy.visibility_default_visible is True
        assert controller.policy.editing_enabled is False
