"""Send and draft operations against the Gmail API."""

from __future__ import annotations

import logging
import socket
from typing import Callable, Dict, Literal, Optional, Protocol

import google_auth_httplib2
import httplib2
from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from pydantic import BaseModel, Field

from gmail_sender.errors import (
    ErrorKind,
    GmailSenderError,
    ProviderRejected,
    TransportTimeout,
)
from gmail_sender.mime import MailMessage, compose_message, encode_base64url, read_attachment
from gmail_sender.oauth import OAuthClient

logger = logging.getLogger(__name__)

USER_ID = "me"

Action = Literal["send", "create_draft"]

SUCCESS_TEXT: Dict[str, str] = {
    "send": "Email sent successfully! Message ID: {id}",
    "create_draft": "Draft created successfully! Draft ID: {id}",
}


class MailProvider(Protocol):
    def send(self, raw: str) -> str: ...

    def create_draft(self, raw: str) -> str: ...


ProviderFactory = Callable[[Credentials, float], MailProvider]


class OperationResult(BaseModel):
    status: Literal["success", "auth_required", "error"]
    text: str = Field(..., description="Human-readable outcome.")
    kind: Optional[ErrorKind] = None
    resource_id: Optional[str] = Field(default=None, description="Gmail message or draft id.")
    auth_url: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.status == "error"


def _provider_message(exc: HttpError) -> str:
    reason = getattr(exc, "reason", None)
    if not reason and hasattr(exc, "_get_reason"):
        reason = exc._get_reason()
    return str(reason or exc)


class GmailProvider:
    """Gmail API calls scoped to the authenticated user."""

    def __init__(self, credentials: Credentials, timeout: float) -> None:
        self.credentials = credentials
        http = google_auth_httplib2.AuthorizedHttp(credentials, http=httplib2.Http(timeout=timeout))
        self._service = build("gmail", "v1", http=http, cache_discovery=False)

    def send(self, raw: str) -> str:
        request = self._service.users().messages().send(userId=USER_ID, body={"raw": raw})
        return self._execute(request)["id"]

    def create_draft(self, raw: str) -> str:
        request = self._service.users().drafts().create(
            userId=USER_ID, body={"message": {"raw": raw}}
        )
        return self._execute(request)["id"]

    @staticmethod
    def _execute(request):
        try:
            return request.execute()
        except HttpError as exc:
            status = getattr(exc, "status_code", None) or int(exc.resp.status)
            raise ProviderRejected(_provider_message(exc), status=status) from exc
        except (socket.timeout, TimeoutError) as exc:
            raise TransportTimeout(f"Gmail API request timed out: {exc}") from exc
        except RefreshError as exc:
            raise ProviderRejected(f"Token refresh rejected: {exc}") from exc
        except (httplib2.HttpLib2Error, OSError) as exc:
            raise ProviderRejected(f"Cannot reach the Gmail API: {exc}") from exc


class Mailer:
    """The two mail operations: credential check, compose, encode, submit."""

    def __init__(
        self,
        oauth: OAuthClient,
        provider_factory: Optional[ProviderFactory] = None,
        timeout: float = 30.0,
    ) -> None:
        self._oauth = oauth
        self._provider_factory = provider_factory or GmailProvider
        self._timeout = timeout

    def send_message(
        self,
        recipient: str,
        subject: str,
        body: str,
        attachment_path: Optional[str] = None,
    ) -> OperationResult:
        return self._submit("send", recipient, subject, body, attachment_path)

    def create_draft(
        self,
        recipient: str,
        subject: str,
        body: str,
        attachment_path: Optional[str] = None,
    ) -> OperationResult:
        return self._submit("create_draft", recipient, subject, body, attachment_path)

    def _submit(
        self,
        action: Action,
        recipient: str,
        subject: str,
        body: str,
        attachment_path: Optional[str],
    ) -> OperationResult:
        try:
            credentials = self._oauth.load_credentials()
        except GmailSenderError as exc:
            return self._failure(action, exc.kind, str(exc))
        except OSError as exc:
            return self._failure(action, ErrorKind.CONFIGURATION_ERROR, f"Cannot store credentials: {exc}")

        if credentials is None:
            url = self._oauth.auth_start_url
            return OperationResult(
                status="auth_required",
                kind=ErrorKind.NOT_AUTHENTICATED,
                auth_url=url,
                text=f"Authentication required. Please visit {url} to authenticate with your Gmail account.",
            )

        try:
            attachment = read_attachment(attachment_path) if attachment_path else None
            message = MailMessage(recipient=recipient, subject=subject, body=body, attachment=attachment)
            raw = encode_base64url(compose_message(message))
            provider = self._provider_factory(credentials, self._timeout)
            resource_id = getattr(provider, action)(raw)
        except GmailSenderError as exc:
            return self._failure(action, exc.kind, str(exc))
        except ValueError as exc:
            return self._failure(action, ErrorKind.INVALID_ARGUMENTS, str(exc))

        logger.info("%s succeeded for %s (id=%s)", action, recipient, resource_id)
        try:
            self._oauth.sync_credentials(credentials)
        except (GmailSenderError, OSError) as exc:
            logger.warning("Could not persist refreshed credentials: %s", exc)

        return OperationResult(
            status="success",
            text=SUCCESS_TEXT[action].format(id=resource_id),
            resource_id=resource_id,
        )

    @staticmethod
    def _failure(action: str, kind: ErrorKind, message: str) -> OperationResult:
        logger.warning("%s failed (%s): %s", action, kind.value, message)
        return OperationResult(status="error", kind=kind, text=f"Error: {message}")
