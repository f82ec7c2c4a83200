"""Entry point that turns task emails into flattened documents and forwards them."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

# Ensure project root is on sys.path when running as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from mailto_things.config import Settings
from mailto_things.extraction import default_registry
from mailto_things.graph_client import GraphClient
from mailto_things.inbox import InboxProcessor
from mailto_things.mime_tree import ContentTreeBuilder
from mailto_things.pipeline import DocumentPipeline
from mailto_things.processed_log import ProcessedLog

load_dotenv()

# CLI flag -> settings alias; flags win over the environment.
FLAG_OVERRIDES = {
    "attachments_dir": "MAILTO_THINGS_ATTACHMENTS_DIR",
    "attachments_dir_url": "MAILTO_THINGS_ATTACHMENTS_DIR_URL",
    "incoming_email": "MAILTO_THINGS_INCOMING_EMAIL",
    "outgoing_email": "MAILTO_THINGS_OUTGOING_EMAIL",
    "file_create_mode": "MAILTO_THINGS_FILE_CREATE_MODE",
    "dir_create_mode": "MAILTO_THINGS_DIR_CREATE_MODE",
    "ocr": "MAILTO_THINGS_OCR_ENABLED",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Forward task emails (with attachments) to a task inbox.")
    parser.add_argument(
        "--attachments-dir",
        help="Directory where attachments are stored. Overrides MAILTO_THINGS_ATTACHMENTS_DIR.",
    )
    parser.add_argument(
        "--attachments-dir-url",
        help="Public URL of the attachments directory. Overrides MAILTO_THINGS_ATTACHMENTS_DIR_URL.",
    )
    parser.add_argument(
        "--incoming-email",
        help="Address that receives task emails. Overrides MAILTO_THINGS_INCOMING_EMAIL.",
    )
    parser.add_argument(
        "--outgoing-email",
        help="Task inbox address documents are sent to. Overrides MAILTO_THINGS_OUTGOING_EMAIL.",
    )
    parser.add_argument(
        "--file-create-mode",
        help="Octal mode for attachment files written to disk, e.g. 0600 or 0o600.",
    )
    parser.add_argument(
        "--dir-create-mode",
        help="Octal mode for attachment directories created on disk, e.g. 0700.",
    )
    parser.add_argument(
        "--ocr",
        action="store_const",
        const=True,
        help="Append Tesseract OCR text to image attachments.",
    )
    parser.add_argument("--max-messages", type=int, help="Limit how many messages to process")
    parser.add_argument("--dry-run", action="store_true", help="Build documents without sending or trashing mail")
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    overrides = {
        alias: getattr(args, flag)
        for flag, alias in FLAG_OVERRIDES.items()
        if getattr(args, flag) is not None
    }
    return Settings(**overrides)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    try:
        settings = load_settings(args)
    except ValidationError as exc:
        parser.print_help(sys.stderr)
        raise SystemExit(f"Invalid configuration:\n{exc}") from exc
    configure_logging(settings.log_level)

    registry = default_registry()
    processor = InboxProcessor(
        mailbox=GraphClient(settings),
        pipeline=DocumentPipeline(settings.pipeline_config(), registry=registry),
        builder=ContentTreeBuilder(registry),
        ledger=ProcessedLog(settings.processed_db),
        outgoing_email=settings.outgoing_email,
        dry_run=args.dry_run,
    )

    stats = processor.run(settings.incoming_email, max_messages=args.max_messages)

    logging.info(
        "Run complete: found=%s forwarded=%s skipped=%s failed=%s",
        stats["found"],
        stats["forwarded"],
        stats["skipped"],
        stats["failed"],
    )
    if stats["failed"]:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
