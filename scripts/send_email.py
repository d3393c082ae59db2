"""Send an email (or save a draft) from the command line using the stored Gmail token."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from gmail_sender.config import load_settings  # noqa: E402
from gmail_sender.credential_store import CredentialStore  # noqa: E402
from gmail_sender.errors import ConfigurationError  # noqa: E402
from gmail_sender.mailer import Mailer, OperationResult  # noqa: E402
from gmail_sender.oauth import OAuthClient  # noqa: E402


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Send an email or create a draft via Gmail.")
    parser.add_argument("recipient", help="Email address of the recipient.")
    parser.add_argument("subject", help="Subject line.")
    parser.add_argument("body", help="Plain-text body.")
    parser.add_argument("--attachment", default=None, help="Path to a file to attach.")
    parser.add_argument("--draft", action="store_true", help="Create a draft instead of sending.")
    return parser


def run(args: argparse.Namespace, mailer: Mailer) -> OperationResult:
    operation = mailer.create_draft if args.draft else mailer.send_message
    action = "Drafting" if args.draft else "Sending"
    print(f"{action} '{args.subject}' to {args.recipient} ...", flush=True)
    return operation(args.recipient, args.subject, args.body, args.attachment)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    oauth = OAuthClient(settings, CredentialStore(settings.token_path))
    result = run(args, Mailer(oauth, timeout=settings.api_timeout))

    print(result.text)
    if result.status == "auth_required":
        print("Run scripts/authorize.py to complete the one-time authorization.")
    return 1 if result.status != "success" else 0


if __name__ == "__main__":
    sys.exit(main())
