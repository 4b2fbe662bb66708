"""Key-value persistence for chat state."""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from supabase import Client, create_client

from config import STATE_STORAGE_KEY
from models.conversation import ChatState
from services.chat_session import deserialize_state, serialize_state

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    def load(self) -> Optional[ChatState]:
        ...

    def save(self, state: ChatState) -> None:
        ...


def _decode(raw: Optional[str], source: str) -> Optional[ChatState]:
    if not raw:
        return None
    try:
        return deserialize_state(json.loads(raw))
    except (ValueError, KeyError, TypeError) as e:
        logger.error(f"Discarding unreadable chat state from {source}: {e}")
        return None


class InMemoryStateStore:
    """Holds the serialized state string; nothing outlives the process."""

    def __init__(self, storage_key: str = STATE_STORAGE_KEY):
        self.storage_key = storage_key
        self._values = {}

    def load(self) -> Optional[ChatState]:
        return _decode(self._values.get(self.storage_key), "memory")

    def save(self, state: ChatState) -> None:
        self._values[self.storage_key] = json.dumps(serialize_state(state))


class JSONFileStateStore:
    """One JSON file per storage key inside `directory`."""

    def __init__(self, directory: str, storage_key: str = STATE_STORAGE_KEY):
        self.path = Path(directory) / f"{storage_key}.json"

    def load(self) -> Optional[ChatState]:
        if not self.path.exists():
            return None
        return _decode(self.path.read_text(encoding="utf-8"), str(self.path))

    def save(self, state: ChatState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(serialize_state(state), indent=2), encoding="utf-8")
        tmp_path.replace(self.path)


class SupabaseStateStore:
    """Chat state as one row per storage key in a Supabase table.

    Expected table: `chat_state (key text primary key, value text, updated_at timestamptz)`.
    """

    def __init__(
        self,
        url: Optional[str],
        key: Optional[str],
        table: str = "chat_state",
        storage_key: str = STATE_STORAGE_KEY,
        client: Optional[Client] = None
    ):
        """
        Initialize the store with a Supabase client.

        Raises:
            ValueError: If no client is given and the URL or key is missing
        """
        if client is None:
            if not url or not key:
                raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")
            client = create_client(url, key)

        self.client = client
        self.table = table
        self.storage_key = storage_key
        logger.info(f"SupabaseStateStore initialized (table={table})")

    def load(self) -> Optional[ChatState]:
        result = self.client.table(self.table).select("value").eq("key", self.storage_key).execute()
        if not result.data:
            return None
        return _decode(result.data[0]["value"], f"supabase:{self.table}")

    def save(self, state: ChatState) -> None:
        try:
            self.client.table(self.table).upsert({
                "key": self.storage_key,
                "value": json.dumps(serialize_state(state)),
                "updated_at": datetime.now(timezone.utc).isoformat(),
            }).execute()
        except Exception as e:
            logger.error(f"Error saving chat state to Supabase: {e}")
            raise


def create_state_store(
    kind: str,
    directory: Optional[str] = None,
    supabase_url: Optional[str] = None,
    supabase_key: Optional[str] = None,
    storage_key: str = STATE_STORAGE_KEY
) -> StateStore:
    """
    Build a state store by name: "memory", "file" or "supabase".

    Raises:
        ValueError: If the kind is unknown or its settings are missing
    """
    if kind == "memory":
        return InMemoryStateStore(storage_key)
    if kind == "file":
        if not directory:
            raise ValueError("A state directory is required for the file state store")
        return JSONFileStateStore(directory, storage_key)
    if kind == "supabase":
        return SupabaseStateStore(supabase_url, supabase_key, storage_key=storage_key)
    raise ValueError(f"Unknown state store: {kind}")
