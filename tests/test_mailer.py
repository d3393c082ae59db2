"""Tests for the send/draft operations with a fake Gmail provider."""

import email
import json
from email.message import Message
from pathlib import Path
from typing import List, Optional
from unittest.mock import MagicMock

import httplib2
import pytest
from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials
from googleapiclient.errors import HttpError

from gmail_sender.config import Settings
from gmail_sender.credential_store import CredentialStore
from gmail_sender.errors import ErrorKind, ProviderRejected, TransportTimeout
from gmail_sender.mailer import GmailProvider, Mailer
from gmail_sender.mime import decode_base64url
from gmail_sender.oauth import OAuthClient

AUTH_URL = "http://localhost:3500/auth"


class FakeProvider:
    def __init__(self) -> None:
        self.sent: List[str] = []
        self.drafts: List[str] = []
        self.error: Optional[Exception] = None

    def send(self, raw: str) -> str:
        if self.error:
            raise self.error
        self.sent.append(raw)
        return "msg-1"

    def create_draft(self, raw: str) -> str:
        if self.error:
            raise self.error
        self.drafts.append(raw)
        return "r-draft-1"


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def oauth() -> MagicMock:
    client = MagicMock(spec=OAuthClient)
    client.auth_start_url = AUTH_URL
    client.load_credentials.return_value = Credentials(token="ya29.access")
    return client


@pytest.fixture
def factory(provider: FakeProvider) -> MagicMock:
    return MagicMock(return_value=provider)


@pytest.fixture
def mailer(oauth: MagicMock, factory: MagicMock) -> Mailer:
    return Mailer(oauth, provider_factory=factory, timeout=12.5)


def _decode(raw: str) -> Message:
    return email.message_from_bytes(decode_base64url(raw))


# ── Not authenticated ──────────────────────────────────────────────────────────


class TestNotAuthenticated:
    def test_send_returns_guidance_without_network(
        self, mailer: Mailer, oauth: MagicMock, factory: MagicMock
    ) -> None:
        oauth.load_credentials.return_value = None

        result = mailer.send_message("a@example.com", "Hi", "Hello")

        assert result.status == "auth_required"
        assert not result.is_error
        assert result.kind == ErrorKind.NOT_AUTHENTICATED
        assert result.auth_url == AUTH_URL
        assert AUTH_URL in result.text
        factory.assert_not_called()

    def test_draft_returns_guidance(self, mailer: Mailer, oauth: MagicMock, factory: MagicMock) -> None:
        oauth.load_credentials.return_value = None
        result = mailer.create_draft("a@example.com", "Hi", "Hello")
        assert result.status == "auth_required"
        factory.assert_not_called()

    def test_unreadable_token_file_returns_guidance(
        self, settings: Settings, store: CredentialStore, factory: MagicMock
    ) -> None:
        store.path.parent.mkdir(parents=True)
        store.path.write_bytes(b"\xff\xfe\x00garbage")
        mailer = Mailer(OAuthClient(settings, store), provider_factory=factory)

        result = mailer.send_message("a@example.com", "Hi", "Hello")

        assert result.status == "auth_required"
        assert result.auth_url == settings.auth_start_url
        factory.assert_not_called()


# ── Success ────────────────────────────────────────────────────────────────────


class TestSendMessage:
    def test_sends_encoded_document(
        self, mailer: Mailer, provider: FakeProvider, factory: MagicMock, oauth: MagicMock
    ) -> None:
        result = mailer.send_message("a@example.com", "Hi", "Hello")

        assert result.status == "success"
        assert result.resource_id == "msg-1"
        assert result.text == "Email sent successfully! Message ID: msg-1"
        factory.assert_called_once_with(oauth.load_credentials.return_value, 12.5)

        (raw,) = provider.sent
        assert not set(raw) & {"+", "/", "="}
        assert decode_base64url(raw).decode("utf-8") == (
            "To: a@example.com\r\nSubject: Hi\r\nMIME-Version: 1.0\r\n"
            "Content-Type: text/plain; charset=UTF-8\r\n\r\nHello"
        )

    def test_persists_refreshed_credentials(self, mailer: Mailer, oauth: MagicMock) -> None:
        mailer.send_message("a@example.com", "Hi", "Hello")
        oauth.sync_credentials.assert_called_once_with(oauth.load_credentials.return_value)

    def test_with_attachment(self, mailer: Mailer, provider: FakeProvider, tmp_path: Path) -> None:
        path = tmp_path / "x.png"
        path.write_bytes(bytes([0x89, 0x50, 0x4E, 0x47]))

        result = mailer.send_message("a@example.com", "Pic", "Attached", str(path))

        assert result.status == "success"
        parsed = _decode(provider.sent[0])
        _, attachment = parsed.get_payload()
        assert attachment.get_content_type() == "image/png"
        assert attachment.get_payload(decode=True) == bytes([0x89, 0x50, 0x4E, 0x47])


class TestCreateDraft:
    def test_creates_draft(self, mailer: Mailer, provider: FakeProvider) -> None:
        result = mailer.create_draft("a@example.com", "Later", "Draft body")

        assert result.status == "success"
        assert result.text == "Draft created successfully! Draft ID: r-draft-1"
        assert provider.sent == []
        assert _decode(provider.drafts[0])["Subject"] == "Later"


# ── Failures ───────────────────────────────────────────────────────────────────


class TestFailures:
    def test_provider_rejection_is_reported_verbatim(
        self, mailer: Mailer, provider: FakeProvider, oauth: MagicMock
    ) -> None:
        provider.error = ProviderRejected("Invalid To header", status=400)

        result = mailer.send_message("bogus", "Hi", "Hello")

        assert result.is_error
        assert result.kind == ErrorKind.PROVIDER_REJECTED
        assert "Invalid To header" in result.text
        oauth.sync_credentials.assert_not_called()

    def test_timeout_kind(self, mailer: Mailer, provider: FakeProvider) -> None:
        provider.error = TransportTimeout("Gmail API request timed out")
        result = mailer.create_draft("a@example.com", "Hi", "Hello")
        assert result.is_error
        assert result.kind == ErrorKind.TRANSPORT_TIMEOUT

    def test_missing_attachment(
        self, mailer: Mailer, factory: MagicMock, tmp_path: Path
    ) -> None:
        result = mailer.send_message("a@example.com", "Hi", "Hello", str(tmp_path / "gone.pdf"))

        assert result.is_error
        assert result.kind == ErrorKind.ATTACHMENT_UNREADABLE
        assert "gone.pdf" in result.text
        factory.assert_not_called()

    def test_empty_recipient(self, mailer: Mailer, factory: MagicMock) -> None:
        result = mailer.send_message("", "Hi", "Hello")
        assert result.kind == ErrorKind.INVALID_ARGUMENTS
        factory.assert_not_called()

    def test_refresh_rejected(self, mailer: Mailer, oauth: MagicMock, factory: MagicMock) -> None:
        oauth.load_credentials.side_effect = ProviderRejected("Token refresh rejected: invalid_grant")

        result = mailer.send_message("a@example.com", "Hi", "Hello")

        assert result.is_error
        assert "invalid_grant" in result.text
        factory.assert_not_called()

    def test_credential_write_failure(self, mailer: Mailer, oauth: MagicMock, factory: MagicMock) -> None:
        oauth.load_credentials.side_effect = PermissionError(13, "Permission denied")

        result = mailer.send_message("a@example.com", "Hi", "Hello")

        assert result.is_error
        assert result.kind == ErrorKind.CONFIGURATION_ERROR
        assert "Permission denied" in result.text
        factory.assert_not_called()


# ── Gmail provider error mapping ───────────────────────────────────────────────


class TestGmailProviderExecute:
    def test_http_error_becomes_rejection(self) -> None:
        content = json.dumps({"error": {"code": 400, "message": "Invalid To header"}}).encode()
        request = MagicMock()
        request.execute.side_effect = HttpError(httplib2.Response({"status": "400"}), content)

        with pytest.raises(ProviderRejected, match="Invalid To header") as excinfo:
            GmailProvider._execute(request)
        assert excinfo.value.status == 400

    def test_socket_timeout(self) -> None:
        request = MagicMock()
        request.execute.side_effect = TimeoutError("timed out")

        with pytest.raises(TransportTimeout):
            GmailProvider._execute(request)

    def test_revoked_grant_during_call(self) -> None:
        request = MagicMock()
        request.execute.side_effect = RefreshError("invalid_grant: Token has been expired or revoked.")

        with pytest.raises(ProviderRejected, match="invalid_grant"):
            GmailProvider._execute(request)

    @pytest.mark.parametrize(
        "error",
        [
            httplib2.ServerNotFoundError("Unable to find the server at gmail.googleapis.com"),
            ConnectionRefusedError(111, "Connection refused"),
        ],
    )
    def test_network_failure(self, error: Exception) -> None:
        request = MagicMock()
        request.execute.side_effect = error

        with pytest.raises(ProviderRejected, match="Cannot reach the Gmail API"):
            GmailProvider._execute(request)

    def test_success_returns_body(self) -> None:
        request = MagicMock()
        request.execute.return_value = {"id": "abc", "threadId": "t"}
        assert GmailProvider._execute(request) == {"id": "abc", "threadId": "t"}
