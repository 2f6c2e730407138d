from contextlib import contextmanager

from loguru import logger
from tinydb import Query, TinyDB

from ledger_bot.errors import NotFound, StoreFailure
from ledger_bot.models.schemas import Entry, Idle, SessionState, session_state_adapter


def open_db(db_path: str = "ledger.json") -> TinyDB:
    return TinyDB(db_path, ensure_ascii=False, encoding="utf-8")


@contextmanager
def _store_errors(operation: str):
    try:
        yield
    except (OSError, ValueError) as e:
        logger.error("Store operation {} failed: {}", operation, e)
        raise StoreFailure(operation) from e


class EntryRepository:
    def __init__(self, db: TinyDB):
        self.table = db.table("entries")

    def add(self, entry: Entry) -> Entry:
        with _store_errors("insert entry"):
            self.table.insert(entry.model_dump(mode="json"))
        return entry

    def add_many(self, entries: list[Entry]) -> list[Entry]:
        """Insert all entries in a single write."""
        if not entries:
            return []
        with _store_errors("insert entries"):
            self.table.insert_multiple(e.model_dump(mode="json") for e in entries)
        return entries

    def get(self, entry_id: str) -> Entry | None:
        E = Query()
        with _store_errors("get entry"):
            doc = self.table.get(E.id == entry_id)
            if doc is None:
                return None
            return Entry(**doc)

    def find(self, name: str | None = None, limit: int | None = None) -> list[Entry]:
        """Entries for ``name`` (or all), newest first."""
        with _store_errors("find entries"):
            if name:
                E = Query()
                docs = self.table.search(E.name == name)
            else:
                docs = self.table.all()
            entries = [Entry(**doc) for doc in docs]
        entries.sort(key=lambda e: e.time, reverse=True)
        if limit is not None:
            entries = entries[:limit]
        return entries

    def delete(self, entry_id: str) -> bool:
        E = Query()
        with _store_errors("delete entry"):
            removed = self.table.remove(E.id == entry_id)
        return bool(removed)

    def pop(self, entry_id: str) -> Entry:
        """Delete an entry and return it; raises NotFound when absent."""
        entry = self.get(entry_id)
        if entry is None:
            raise NotFound(entry_id)
        self.delete(entry_id)
        return entry

    def delete_where(self, name: str) -> int:
        E = Query()
        with _store_errors("delete entries by name"):
            removed = self.table.remove(E.name == name)
        return len(removed)

    def delete_all(self) -> int:
        with _store_errors("delete all entries"):
            count = len(self.table)
            if count:
                self.table.truncate()
        return count


class SessionRepository:
    def __init__(self, db: TinyDB):
        self.table = db.table("sessions")

    def get(self, user_id: str) -> SessionState:
        S = Query()
        with _store_errors("get session"):
            doc = self.table.get(S.user_id == user_id)
            if doc is None:
                return Idle()
            data = {k: v for k, v in doc.items() if k != "user_id" and v is not None}
            return session_state_adapter.validate_python(data)

    def save(self, user_id: str, state: SessionState) -> None:
        S = Query()
        # Unset fields are written as None so the upsert never keeps stale values
        data = {"user_id": user_id, "participant": None, "mode": None, **state.model_dump()}
        with _store_errors("save session"):
            self.table.upsert(data, S.user_id == user_id)

    def reset(self, user_id: str) -> None:
        self.save(user_id, Idle())
