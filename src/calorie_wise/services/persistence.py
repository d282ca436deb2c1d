"""Persistence gateway for user snapshots."""

from dataclasses import dataclass
from typing import Protocol

from pydantic import BaseModel, ValidationError

from calorie_wise.domain.errors import PersistenceError
from calorie_wise.domain.models import Snapshot

DOCUMENT_FIELDS = (
    "userProfile",
    "dailyLogs",
    "workoutPlan",
    "weightLog",
    "chatSessions",
    "activeChatSessionId",
)


class DocumentRepository(Protocol):
    """Key-value store holding one document per user."""

    def get_document(self, user_id: str) -> dict[str, object] | None:
        """Return the stored document or None when there is none."""

    def merge_document(self, user_id: str, fields: dict[str, object]) -> None:
        """Merge top-level fields into the stored document, creating it if needed."""


@dataclass
class PersistenceGateway:
    """Loads and save-merges snapshots without touching the live state."""

    repository: DocumentRepository

    def load(self, user_id: str) -> Snapshot | None:
        """Return the stored snapshot, or None when the user has no document."""
        try:
            document = self.repository.get_document(user_id)
        except Exception as exc:
            raise PersistenceError(f"Failed to load data for {user_id}") from exc
        if document is None:
            return None
        try:
            return Snapshot.model_validate(
                {key: value for key, value in document.items() if value is not None}
            )
        except ValidationError as exc:
            raise PersistenceError(f"Stored data for {user_id} is invalid") from exc

    def save_merge(self, user_id: str, fields: dict[str, object]) -> None:
        """Merge the supplied top-level fields into the user's document."""
        unknown = set(fields) - set(DOCUMENT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown document fields: {sorted(unknown)}")
        try:
            self.repository.merge_document(user_id, sanitize_document(fields))
        except Exception as exc:
            raise PersistenceError(f"Failed to save data for {user_id}") from exc


def sanitize_document(fields: dict[str, object]) -> dict[str, object]:
    """Prepare fields for the store.

    Models are dumped to JSON-compatible data. Missing values stay as an
    explicit null at every level, so a merge clears a top-level field.
    """
    return {key: _to_json(value) for key, value in fields.items()}


def _to_json(value: object) -> object:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, dict):
        return {key: _to_json(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_to_json(item) for item in value]
    return value
