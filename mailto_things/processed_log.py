"""SQLite-backed ledger of messages that were already forwarded."""

from __future__ import annotations

from pathlib import Path

import sqlite_utils

from .utils import utc_now_iso


class ProcessedLog:
    """Store forwarded message IDs so a re-run never sends the same task twice."""

    TABLE = "processed_messages"

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db = sqlite_utils.Database(str(db_path))
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self.db[self.TABLE].create(
            {
                "message_id": str,
                "internet_message_id": str,
                "subject": str,
                "body_sha256": str,
                "processed_at": str,
            },
            pk="message_id",
            if_not_exists=True,
        )

    def seen(self, message_id: str) -> bool:
        return self.db[self.TABLE].count_where("message_id = ?", [message_id]) > 0

    def record(
        self,
        *,
        message_id: str,
        internet_message_id: str,
        subject: str,
        body_sha256: str,
    ) -> None:
        self.db[self.TABLE].upsert(
            {
                "message_id": message_id,
                "internet_message_id": internet_message_id,
                "subject": subject,
                "body_sha256": body_sha256,
                "processed_at": utc_now_iso(),
            },
            pk="message_id",
        )
