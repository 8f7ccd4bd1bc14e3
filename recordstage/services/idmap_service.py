"""
Surrogate key mapping.

Every (namespace, natural id) pair is assigned a dense integer key the
first time it is seen. Keys are never reassigned or reused, so the
mapping is a bijection within each namespace. The namespace is the table
name; the empty namespace is shared by identifier-reference columns.
"""

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import ContextManager, Dict, Iterator, List, Optional, Set, Tuple

from sqlmodel import func, select

from ..core.constants import GLOBAL_NAMESPACE
from ..infrastructure.db.connection import DatabaseManager, SqlConnection
from ..infrastructure.db.models.idmap import IdMapEntry
from ..utils.logger import get_logger

logger = get_logger(__name__)


class KeyStore(ABC):
    """
    Owner of the key assignments.

    allocate_if_absent must be atomic: concurrent callers asking for the
    same pair get the same key, and no key is handed out twice within a
    namespace.
    """

    durable: bool = False

    @abstractmethod
    def allocate_if_absent(self, namespace: str, natural_id: str) -> int:
        pass

    def transaction(self, db: DatabaseManager) -> ContextManager[SqlConnection]:
        """Transaction that assignments made inside it belong to."""
        return db.transaction()

    def sync(self) -> int:
        return 0


class MemoryKeyStore(KeyStore):
    """Key store living for the lifetime of the process."""

    durable = False

    def __init__(self):
        self._lock = threading.Lock()
        self._keys: Dict[Tuple[str, str], int] = {}
        self._counters: Dict[str, int] = {}

    def allocate_if_absent(self, namespace: str, natural_id: str) -> int:
        with self._lock:
            key = self._keys.get((namespace, natural_id))
            if key is None:
                key = self._counters.get(namespace, 0) + 1
                self._counters[namespace] = key
                self._keys[(namespace, natural_id)] = key
            return key


class DatabaseKeyStore(KeyStore):
    """
    Key store persisted in the idmap table.

    Inside transaction(), new assignments are written on that transaction's
    connection and become durable when it commits. Outside one, each new
    assignment is committed on its own before it is returned.

    Assignments are never revoked. When a transaction rolls back, its
    assignments stay valid in this process and are written by sync().
    Counters are recovered from the highest stored key of each namespace
    and never lowered, so no key is handed out twice. The lock covers one
    process; concurrent writers in other processes are rejected by the
    table's unique constraints.
    """

    durable = True

    def __init__(self, db: DatabaseManager):
        self.db = db
        self._lock = threading.Lock()
        self._local = threading.local()
        self._cache: Dict[Tuple[str, str], int] = {}
        self._counters: Dict[str, int] = {}
        self._unwritten: Set[Tuple[str, str]] = set()

    @contextmanager
    def transaction(self, db: DatabaseManager) -> Iterator[SqlConnection]:
        written: List[Tuple[str, str]] = []
        committed = False
        try:
            with db.transaction() as conn:
                self._local.binding = (conn, written)
                yield conn
            committed = True
        finally:
            self._local.binding = None
            if written and not committed:
                with self._lock:
                    self._unwritten.update(written)
                logger.debug(f"Rolled back {len(written)} surrogate key assignments")

    def allocate_if_absent(self, namespace: str, natural_id: str) -> int:
        with self._lock:
            key = self._cache.get((namespace, natural_id))
            if key is not None:
                return key

            binding = getattr(self._local, "binding", None)
            if binding is None:
                with self.db.get_session() as session:
                    key, added = self._lookup_or_add(session, namespace, natural_id)
            else:
                conn, written = binding
                with conn.session() as session:
                    key, added = self._lookup_or_add(session, namespace, natural_id)
                if added:
                    written.append((namespace, natural_id))

            self._counters[namespace] = max(key, self._counters.get(namespace, 0))
            self._cache[(namespace, natural_id)] = key
            return key

    def sync(self) -> int:
        """Write the assignments whose transaction rolled back; returns how many."""
        with self._lock:
            pending = sorted(self._unwritten)
            if not pending:
                return 0
            with self.db.get_session() as session:
                for namespace, natural_id in pending:
                    if session.get(IdMapEntry, (namespace, natural_id)) is None:
                        sk = self._cache[(namespace, natural_id)]
                        session.add(IdMapEntry(table_name=namespace, natural_id=natural_id, sk=sk))
            self._unwritten.clear()

        logger.info(f"Wrote {len(pending)} surrogate key assignments left by failed loads")
        return len(pending)

    def _lookup_or_add(self, session, namespace: str, natural_id: str) -> Tuple[int, bool]:
        entry = session.get(IdMapEntry, (namespace, natural_id))
        if entry is not None:
            return entry.sk, False

        key = self._next_key(session, namespace)
        session.add(IdMapEntry(table_name=namespace, natural_id=natural_id, sk=key))
        return key, True

    def _next_key(self, session, namespace: str) -> int:
        if namespace not in self._counters:
            statement = select(func.max(IdMapEntry.sk)).where(IdMapEntry.table_name == namespace)
            highest = session.exec(statement).one()
            self._counters[namespace] = highest or 0
            logger.debug(f"Surrogate key counter for '{namespace}' starts at {self._counters[namespace]}")
        return self._counters[namespace] + 1


class IDMap:
    """Resolves natural ids to surrogate keys through a KeyStore."""

    def __init__(self, store: Optional[KeyStore] = None):
        self.store = store or MemoryKeyStore()

    def resolve(self, namespace: str, natural_id: str) -> int:
        """
        Args:
            namespace: Table name, or "" for identifier-reference columns
            natural_id: Identifier from the source record

        Returns:
            Surrogate key, the same on every call for the same pair
        """
        return self.store.allocate_if_absent(namespace, str(natural_id))

    def resolve_reference(self, natural_id: str) -> int:
        return self.resolve(GLOBAL_NAMESPACE, natural_id)

    def transaction(self, db: DatabaseManager) -> ContextManager[SqlConnection]:
        """Open a transaction on db that new assignments are written in."""
        return self.store.transaction(db)

    def sync(self) -> int:
        return self.store.sync()
