"""Run the OAuth callback listener in the foreground until authorization succeeds."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from gmail_sender.config import ensure_config_dir, load_settings  # noqa: E402
from gmail_sender.credential_store import CredentialStore, TokenRecord  # noqa: E402
from gmail_sender.errors import ConfigurationError  # noqa: E402
from gmail_sender.oauth import OAuthClient, OAuthListener, create_callback_app  # noqa: E402


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Authorize Gmail access for the sender MCP server.")
    parser.add_argument("--force", action="store_true", help="Authorize even if a token is already stored.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    try:
        settings = load_settings()
        ensure_config_dir(settings.config_dir)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    store = CredentialStore(settings.token_path)

    if store.load() is not None and not args.force:
        print(f"A token is already stored at {settings.token_path}. Use --force to replace it.")
        return 0

    listener: OAuthListener

    def _done(record: TokenRecord) -> None:
        print(f"Token saved to {settings.token_path}", flush=True)
        listener.stop(timeout=0)

    app = create_callback_app(OAuthClient(settings, store), on_authorized=_done)
    listener = OAuthListener(app, settings.oauth_host, settings.oauth_port)

    print(f"To authenticate, visit: {settings.auth_start_url}", flush=True)
    listener.serve_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
