"""Supabase repository for per-user snapshot documents."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from calorie_wise.services.persistence import DocumentRepository

_TABLE = "user_documents"
_COLUMNS = {
    "userProfile": "user_profile",
    "dailyLogs": "daily_logs",
    "workoutPlan": "workout_plan",
    "weightLog": "weight_log",
    "chatSessions": "chat_sessions",
    "activeChatSessionId": "active_chat_session_id",
}


@dataclass
class SupabaseDocumentRepository(DocumentRepository):
    """Supabase implementation storing one row per user, one column per field."""

    client: Client

    def get_document(self, user_id: str) -> dict[str, object] | None:
        """Return the user's document, if present."""
        response = (
            self.client.table(_TABLE)
            .select(", ".join(_COLUMNS.values()))
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return {field: row.get(column) for field, column in _COLUMNS.items()}

    def merge_document(self, user_id: str, fields: dict[str, object]) -> None:
        """Upsert only the supplied columns so other fields stay untouched."""
        payload: dict[str, object] = {
            _COLUMNS[field]: value for field, value in fields.items()
        }
        payload["user_id"] = user_id
        payload["updated_at"] = datetime.now(tz=UTC).isoformat()
        self.client.table(_TABLE).upsert(payload, on_conflict="user_id").execute()
