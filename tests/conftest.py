"""Shared pytest fixtures."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from gmail_sender.config import Settings
from gmail_sender.credential_store import CredentialStore, TokenRecord


def _epoch_millis(delta: timedelta) -> int:
    return int((datetime.now(timezone.utc) + delta).timestamp() * 1000)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        client_id="client-123.apps.googleusercontent.com",
        client_secret="shh",
        config_dir=tmp_path / "config",
        oauth_port=3500,
    )


@pytest.fixture
def store(settings: Settings) -> CredentialStore:
    return CredentialStore(settings.token_path)


@pytest.fixture
def valid_record() -> TokenRecord:
    """A record whose access token is good for another hour."""
    return TokenRecord(
        access_token="ya29.access",
        refresh_token="1//refresh",
        expiry_date=_epoch_millis(timedelta(hours=1)),
        scope="https://www.googleapis.com/auth/gmail.compose",
        token_type="Bearer",
    )


@pytest.fixture
def expired_record(valid_record: TokenRecord) -> TokenRecord:
    return valid_record.model_copy(update={"expiry_date": _epoch_millis(timedelta(hours=-1))})
