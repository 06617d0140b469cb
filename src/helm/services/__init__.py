"""Service layer helpers (settings, document persistence, autosave)."""

from .autosave import DOCUMENT_ID, AutosaveScheduler, committed_snapshot
from .document_store import Database, DocumentStore, PromptSettingsStore, StoreError
from .settings import SecretVault, Settings, SettingsStore

__all__ = [
    "DOCUMENT_ID",
    "AutosaveScheduler",
    "committed_snapshot",
    "Database",
    "DocumentStore",
    "PromptSettingsStore",
    "StoreError",
    "SecretVault",
    "Settings",
    "SettingsStore",
]
