"""MIME composition and the base64url transport encoding Gmail expects for ``raw``."""

from __future__ import annotations

import base64
import time
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from gmail_sender.errors import AttachmentUnreadable

CRLF = "\r\n"
BASE64_LINE_LENGTH = 76
DEFAULT_CONTENT_TYPE = "application/octet-stream"

CONTENT_TYPES: Dict[str, str] = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".txt": "text/plain",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".zip": "application/zip",
}


class Attachment(BaseModel):
    filename: str = Field(..., description="Name written into the Content-Disposition header.")
    data: bytes = Field(..., description="Raw file contents.")


class MailMessage(BaseModel):
    recipient: str
    subject: str
    body: str
    attachment: Optional[Attachment] = None


def content_type_for(filename: str) -> str:
    return CONTENT_TYPES.get(Path(filename).suffix.lower(), DEFAULT_CONTENT_TYPE)


def new_boundary() -> str:
    return f"----=_Part_{int(time.time() * 1000)}_{uuid.uuid4().hex}"


def read_attachment(path: str) -> Attachment:
    resolved = Path(path).expanduser()
    if not resolved.is_file():
        raise AttachmentUnreadable(f"Attachment not found: {resolved}")
    try:
        data = resolved.read_bytes()
    except OSError as exc:
        raise AttachmentUnreadable(f"Cannot read attachment {resolved}: {exc}") from exc
    return Attachment(filename=resolved.name, data=data)


def _base64_lines(data: bytes) -> List[str]:
    encoded = base64.b64encode(data).decode("ascii")
    return [
        encoded[start:start + BASE64_LINE_LENGTH]
        for start in range(0, len(encoded), BASE64_LINE_LENGTH)
    ]


def compose(
    recipient: str,
    subject: str,
    body: str,
    attachment: Optional[Attachment] = None,
    *,
    boundary: Optional[str] = None,
) -> str:
    """Build the MIME document for one message.

    Header values are written verbatim; every line ends with CRLF. Without an
    attachment the document is a single ``text/plain`` part ending with the
    body. With one it is ``multipart/mixed`` holding the text part and the
    base64 attachment part, closed by ``--<boundary>--``.
    """
    if not recipient:
        raise ValueError("Recipient is required.")

    lines = [
        f"To: {recipient}",
        f"Subject: {subject}",
        "MIME-Version: 1.0",
    ]

    if attachment is None:
        lines.extend(["Content-Type: text/plain; charset=UTF-8", "", body])
        return CRLF.join(lines)

    boundary = boundary or new_boundary()
    filename = attachment.filename
    lines.extend(
        [
            f'Content-Type: multipart/mixed; boundary="{boundary}"',
            "",
            f"--{boundary}",
            "Content-Type: text/plain; charset=UTF-8",
            "",
            body,
            "",
            f"--{boundary}",
            f'Content-Type: {content_type_for(filename)}; name="{filename}"',
            "Content-Transfer-Encoding: base64",
            f'Content-Disposition: attachment; filename="{filename}"',
            "",
        ]
    )
    lines.extend(_base64_lines(attachment.data))
    lines.extend(["", f"--{boundary}--"])
    return CRLF.join(lines)


def compose_message(message: MailMessage, *, boundary: Optional[str] = None) -> str:
    return compose(
        message.recipient,
        message.subject,
        message.body,
        message.attachment,
        boundary=boundary,
    )


def encode_base64url(data: Union[bytes, str]) -> str:
    """Base64 with ``-``/``_`` for ``+``/``/`` and the trailing ``=`` padding removed."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.b64encode(data).decode("ascii").replace("+", "-").replace("/", "_").rstrip("=")


def decode_base64url(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)
