"""Error kinds raised by the Gmail sender components."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    NOT_AUTHENTICATED = "NotAuthenticated"
    AUTHORIZATION_EXCHANGE_FAILED = "AuthorizationExchangeFailed"
    ATTACHMENT_UNREADABLE = "AttachmentUnreadable"
    PROVIDER_REJECTED = "ProviderRejected"
    TRANSPORT_TIMEOUT = "TransportTimeout"
    INVALID_ARGUMENTS = "InvalidArguments"
    CONFIGURATION_ERROR = "ConfigurationError"


class GmailSenderError(Exception):
    """Base class; ``kind`` tells the tool boundary how to report it."""

    kind: ErrorKind = ErrorKind.PROVIDER_REJECTED


class NotAuthenticated(GmailSenderError):
    kind = ErrorKind.NOT_AUTHENTICATED


class AuthorizationExchangeFailed(GmailSenderError):
    kind = ErrorKind.AUTHORIZATION_EXCHANGE_FAILED


class AttachmentUnreadable(GmailSenderError):
    kind = ErrorKind.ATTACHMENT_UNREADABLE


class ProviderRejected(GmailSenderError):
    kind = ErrorKind.PROVIDER_REJECTED

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class TransportTimeout(GmailSenderError):
    kind = ErrorKind.TRANSPORT_TIMEOUT


class ConfigurationError(GmailSenderError):
    kind = ErrorKind.CONFIGURATION_ERROR


class ConfigDirectoryError(ConfigurationError):
    """The per-user config directory could not be created."""
