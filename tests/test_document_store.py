"""SQLite document and prompt settings stores."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from helm.ai.prompts import DEFAULT_PROMPT, DEFAULT_REGEN_PROMPT_TEMPLATE, PromptSettings
from helm.services.document_store import (
    CUSTOM_PROMPT_KEY,
    REGEN_TEMPLATE_KEY,
    Database,
    DocumentStore,
    PromptSettingsStore,
    StoreError,
)


@pytest.fixture
def database() -> Iterator[Database]:
    db = Database()
    yield db
    db.close()


def test_document_put_get_last_write_wins(database: Database) -> None:
    store = DocumentStore(database)
    assert store.get("infinite-doc-v1") is None

    store.put("infinite-doc-v1", {"text": "first"})
    store.put("infinite-doc-v1", {"text": "second", "marks": []})

    assert store.get("infinite-doc-v1") == {"text": "second", "marks": []}


def test_corrupt_document_raises_store_error(database: Database) -> None:
    database.upsert_value("documents", "id", "content", "doc", "{not json")
    database.upsert_value("documents", "id", "content", "list", "[1, 2]")
    store = DocumentStore(database)

    with pytest.raises(StoreError):
        store.get("doc")
    with pytest.raises(StoreError):
        store.get("list")


def test_prompt_defaults_when_unset(database: Database) -> None:
    store = PromptSettingsStore(database)

    assert store.load_prompts() == PromptSettings()
    assert store.get("missing", "fallback") == "fallback"


def test_save_prompts_persists_only_given_values(database: Database) -> None:
    store = PromptSettingsStore(database)

    assert store.save_prompts(custom_prompt="Continue darkly:") is True

    prompts = store.load_prompts()
    assert prompts.custom_prompt == "Continue darkly:"
    assert prompts.regen_template == DEFAULT_REGEN_PROMPT_TEMPLATE
    assert store.get(REGEN_TEMPLATE_KEY) is None


def test_blank_stored_prompt_falls_back_to_default(database: Database) -> None:
    store = PromptSettingsStore(database)
    store.put(CUSTOM_PROMPT_KEY, "")

    assert store.load_prompts().custom_prompt == DEFAULT_PROMPT


def test_closed_database_reports_errors(database: Database) -> None:
    prompts = PromptSettingsStore(database)
    database.close()

    assert prompts.load_prompts() == PromptSettings()
    assert prompts.save_prompts(custom_prompt="x") is False
    with pytest.raises(StoreError):
        DocumentStore(database).put("doc", {"text": "x"})


def test_file_database_persists_between_connections(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "helm.db"
    first = Database(path)
    DocumentStore(first).put("doc", {"text": "kept"})
    first.close()

    second = Database(path)
    try:
        assert DocumentStore(second).get("doc") == {"text": "kept"}
        assert second.path == str(path)
    finally:
        second.close()
