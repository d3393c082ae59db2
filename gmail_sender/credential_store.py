"""On-disk persistence for the single OAuth token record."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from google.oauth2.credentials import Credentials
from pydantic import BaseModel, Field, ValidationError

from gmail_sender.config import ensure_config_dir

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


class TokenRecord(BaseModel):
    access_token: Optional[str] = Field(default=None, description="Short-lived bearer token.")
    refresh_token: Optional[str] = Field(default=None, description="Long-lived refresh token.")
    expiry_date: Optional[int] = Field(
        default=None, description="Access token expiry as epoch milliseconds (UTC)."
    )
    scope: Optional[str] = Field(default=None, description="Space-separated granted scopes.")
    token_type: Optional[str] = Field(default="Bearer")

    @classmethod
    def from_credentials(cls, credentials: Credentials) -> "TokenRecord":
        expiry_date = None
        if credentials.expiry is not None:
            # google-auth keeps expiry as a naive UTC datetime
            expiry = credentials.expiry.replace(tzinfo=timezone.utc)
            expiry_date = int(round(expiry.timestamp() * 1000))
        scopes = getattr(credentials, "granted_scopes", None) or credentials.scopes
        return cls(
            access_token=credentials.token,
            refresh_token=credentials.refresh_token,
            expiry_date=expiry_date,
            scope=" ".join(scopes) if scopes else None,
            token_type="Bearer",
        )

    @property
    def scopes(self) -> Optional[List[str]]:
        return self.scope.split() if self.scope else None

    def to_credentials(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        token_uri: str = GOOGLE_TOKEN_URI,
    ) -> Credentials:
        expiry = None
        if self.expiry_date is not None:
            expiry = datetime(1970, 1, 1) + timedelta(milliseconds=self.expiry_date)
        return Credentials(
            token=self.access_token,
            refresh_token=self.refresh_token,
            token_uri=token_uri,
            client_id=client_id,
            client_secret=client_secret,
            scopes=self.scopes,
            expiry=expiry,
        )


class CredentialStore:
    """Loads and saves one ``TokenRecord`` as JSON at a fixed path.

    Single process, single writer: ``save`` overwrites the whole file and the
    last write wins.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> Optional[TokenRecord]:
        """Return the stored record, or ``None`` when absent or unreadable."""
        try:
            content = self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Cannot read token file %s: %s", self.path, exc)
            return None

        try:
            return TokenRecord.model_validate(json.loads(content.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError, ValidationError, TypeError) as exc:
            logger.warning("Ignoring corrupt token file %s: %s", self.path, exc)
            return None

    def save(self, record: TokenRecord) -> None:
        ensure_config_dir(self.path.parent)
        self.path.write_text(record.model_dump_json(indent=2), encoding="utf-8")
        self.path.chmod(0o600)
        logger.info("Saved credentials to %s", self.path)
