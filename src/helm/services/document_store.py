"""SQLite persistence for the document snapshot and prompt settings.

Both stores are last-write-wins key/value tables; there is no versioning.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from threading import RLock
from typing import Any, Mapping

from ..ai.prompts import DEFAULT_PROMPT, DEFAULT_REGEN_PROMPT_TEMPLATE, PromptSettings

__all__ = [
    "CUSTOM_PROMPT_KEY",
    "REGEN_TEMPLATE_KEY",
    "Database",
    "DocumentStore",
    "PromptSettingsStore",
    "StoreError",
]

LOGGER = logging.getLogger(__name__)

CUSTOM_PROMPT_KEY = "custom_prompt"
REGEN_TEMPLATE_KEY = "regen_prompt_template"
_MEMORY = ":memory:"


class StoreError(RuntimeError):
    """A read or write against the database failed."""


class Database:
    """Shared SQLite connection holding the ``documents`` and ``settings`` tables."""

    def __init__(self, db_path: Path | str = _MEMORY) -> None:
        self._path = str(db_path)
        if self._path != _MEMORY:
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if self._path != _MEMORY:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._lock = RLock()
        self._create_schema()

    @property
    def path(self) -> str:
        return self._path

    def _create_schema(self) -> None:
        with self._lock:
            with self._conn:
                self._conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS documents (
                        id TEXT PRIMARY KEY,
                        content TEXT NOT NULL,
                        updated_at REAL NOT NULL
                    )
                    """
                )
                self._conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS settings (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at REAL NOT NULL
                    )
                    """
                )

    def fetch_value(self, table: str, key_column: str, value_column: str, key: str) -> str | None:
        query = f"SELECT {value_column} FROM {table} WHERE {key_column} = ?"
        try:
            with self._lock:
                row = self._conn.execute(query, (key,)).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to read {table}/{key}: {exc}") from exc
        if row is None:
            return None
        return row[0]

    def upsert_value(self, table: str, key_column: str, value_column: str, key: str, value: str) -> None:
        query = f"""
            INSERT INTO {table} ({key_column}, {value_column}, updated_at) VALUES (?, ?, ?)
            ON CONFLICT({key_column}) DO UPDATE SET
                {value_column}=excluded.{value_column},
                updated_at=excluded.updated_at
        """
        try:
            with self._lock:
                with self._conn:
                    self._conn.execute(query, (key, value, time.time()))
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to write {table}/{key}: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            try:
                self._conn.close()
            except sqlite3.Error:  # pragma: no cover - defensive close
                LOGGER.debug("Failed to close database", exc_info=True)


class DocumentStore:
    """``get(id)`` / ``put(id, content)`` over JSON document snapshots."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def get(self, document_id: str) -> dict[str, Any] | None:
        raw = self._db.fetch_value("documents", "id", "content", document_id)
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreError(f"Document {document_id} is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise StoreError(f"Document {document_id} is not a snapshot object")
        return payload

    def put(self, document_id: str, content: Mapping[str, Any]) -> None:
        body = json.dumps(dict(content), ensure_ascii=False)
        self._db.upsert_value("documents", "id", "content", document_id, body)
        LOGGER.debug("Stored document %s (%s bytes)", document_id, len(body))


class PromptSettingsStore:
    """String settings with defaults; holds the base prompt and regeneration template."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def get(self, key: str, default: str | None = None) -> str | None:
        value = self._db.fetch_value("settings", "key", "value", key)
        return default if value is None else value

    def put(self, key: str, value: str) -> None:
        self._db.upsert_value("settings", "key", "value", key, value)

    def load_prompts(self) -> PromptSettings:
        """Return the stored prompts, falling back to defaults when unreadable."""

        try:
            custom = self.get(CUSTOM_PROMPT_KEY, DEFAULT_PROMPT)
            template = self.get(REGEN_TEMPLATE_KEY, DEFAULT_REGEN_PROMPT_TEMPLATE)
        except StoreError as exc:
            LOGGER.warning("Using default prompts: %s", exc)
            return PromptSettings()
        return PromptSettings(
            custom_prompt=custom or DEFAULT_PROMPT,
            regen_template=template or DEFAULT_REGEN_PROMPT_TEMPLATE,
        )

    def save_prompts(self, *, custom_prompt: str | None = None, regen_template: str | None = None) -> bool:
        """Persist whichever prompts are given; failures are logged, not raised."""

        try:
            if custom_prompt is not None:
                self.put(CUSTOM_PROMPT_KEY, custom_prompt)
            if regen_template is not None:
                self.put(REGEN_TEMPLATE_KEY, regen_template)
        except StoreError as exc:
            LOGGER.error("Failed to save prompts: %s", exc)
            return False
        return True
