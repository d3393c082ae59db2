#!/usr/bin/env python3
"""Gmail sender MCP server: send email and create drafts through the Gmail API."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Annotated, Any, Dict, Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import Field

from gmail_sender.config import ensure_config_dir, load_settings
from gmail_sender.credential_store import CredentialStore
from gmail_sender.errors import ConfigurationError
from gmail_sender.mailer import Mailer, OperationResult
from gmail_sender.oauth import OAuthClient, OAuthListener, create_callback_app

logger = logging.getLogger("gmail_sender.server")

INSTRUCTIONS = """
Tools:
- sendEmail: send a plain-text email, optionally with one file attachment.
- createDraft: save the same message as a Gmail draft instead of sending it.

Both take "recipient", "subject", "body" and an optional absolute "attachmentPath".
If the server is not yet authorized, the tools answer with a local URL to open in a
browser; authorize once, then repeat the call.
"""

Recipient = Annotated[str, Field(description="Email address of the recipient")]
Subject = Annotated[str, Field(description="Subject line of the email")]
Body = Annotated[str, Field(description="Body content of the email")]
AttachmentPath = Annotated[
    Optional[str], Field(description="Optional: Absolute path to a file to attach")
]


def _respond(result: OperationResult) -> str:
    if result.is_error:
        raise ToolError(result.text)
    return result.text


async def dispatch(mailer: Mailer, name: str, arguments: Dict[str, Any]) -> str:
    """Run a named tool and return its text; error results raise ``ToolError``."""
    if name == "sendEmail":
        operation = mailer.send_message
    elif name == "createDraft":
        operation = mailer.create_draft
    else:
        raise ToolError(f"Unknown tool: {name}")

    result = await asyncio.to_thread(
        operation,
        arguments["recipient"],
        arguments["subject"],
        arguments["body"],
        arguments.get("attachmentPath"),
    )
    return _respond(result)


def create_server(mailer: Mailer) -> FastMCP:
    server = FastMCP(name="gmail-sender", instructions=INSTRUCTIONS)

    @server.tool(
        name="sendEmail",
        description="Send an email through Gmail. Requires OAuth authentication.",
    )
    async def send_email(
        recipient: Recipient,
        subject: Subject,
        body: Body,
        attachmentPath: AttachmentPath = None,  # noqa: N803
    ) -> str:
        return await dispatch(
            mailer,
            "sendEmail",
            {"recipient": recipient, "subject": subject, "body": body, "attachmentPath": attachmentPath},
        )

    @server.tool(
        name="createDraft",
        description="Create an email draft in Gmail. Requires OAuth authentication.",
    )
    async def create_draft(
        recipient: Recipient,
        subject: Subject,
        body: Body,
        attachmentPath: AttachmentPath = None,  # noqa: N803
    ) -> str:
        return await dispatch(
            mailer,
            "createDraft",
            {"recipient": recipient, "subject": subject, "body": body, "attachmentPath": attachmentPath},
        )

    return server


def main() -> None:
    # stdout carries MCP frames only
    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings()
        ensure_config_dir(settings.config_dir)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        raise SystemExit(1) from exc
    logging.getLogger().setLevel(settings.log_level)

    store = CredentialStore(settings.token_path)
    oauth = OAuthClient(settings, store)
    listener = OAuthListener(create_callback_app(oauth), settings.oauth_host, settings.oauth_port)
    listener.start()
    logger.info("To authenticate, visit: %s", settings.auth_start_url)

    server = create_server(Mailer(oauth, timeout=settings.api_timeout))
    logger.info("Gmail Sender MCP server running on stdio")
    logger.info("Token storage: %s", settings.token_path)
    try:
        server.run()
    finally:
        listener.stop()


if __name__ == "__main__":
    main()
