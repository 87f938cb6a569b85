"""
In-memory transactional object store.

Rows are stored as plain attribute dicts per Record subclass, so every
``fetch`` hands back a new object: mutating it changes nothing until it is
passed to ``save``. Transactions are a stack of table snapshots.
"""

import copy
import itertools
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

from pydantic import BaseModel

from prefab.errors import RecordNotFoundError

R = TypeVar("R", bound="Record")


class Record(BaseModel):
    """Base class for rows kept in an InMemoryStore.

    Example:
        >>> class Owner(Record):
        ...     name: str
        >>> store = InMemoryStore()
        >>> owner = store.create(Owner, name="owner1")
        >>> store.fetch(Owner, owner.id).name
        'owner1'
    """

    model_config = {"validate_assignment": True}

    id: int | None = None


class InMemoryStore:
    """Dict-backed store with nested, snapshot-based transactions."""

    def __init__(self) -> None:
        self._tables: dict[type[Record], dict[int, dict[str, Any]]] = {}
        self._sequence = itertools.count(1)
        # One entry per begin_transaction; None marks a joined transaction.
        self._transactions: list[dict[type[Record], dict[int, dict[str, Any]]] | None] = []

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def begin_transaction(self, joinable: bool = True) -> None:
        """Open a transaction.

        A joinable begin inside an open transaction joins it: its rollback
        discards nothing on its own. A non-joinable begin always takes a
        snapshot of its own.
        """
        if joinable and self._transactions:
            self._transactions.append(None)
        else:
            self._transactions.append(copy.deepcopy(self._tables))

    def rollback_transaction(self) -> None:
        """Restore the tables to the innermost open snapshot."""
        if not self._transactions:
            raise RuntimeError("No open transaction to roll back")
        snapshot = self._transactions.pop()
        if snapshot is not None:
            self._tables = snapshot

    def commit_transaction(self) -> None:
        """Close the innermost transaction, keeping its writes."""
        if not self._transactions:
            raise RuntimeError("No open transaction to commit")
        self._transactions.pop()

    @contextmanager
    def transaction(self, joinable: bool = True) -> Iterator[None]:
        """Commit on success, roll back on error."""
        self.begin_transaction(joinable=joinable)
        try:
            yield
        except BaseException:
            self.rollback_transaction()
            raise
        self.commit_transaction()

    @property
    def transaction_depth(self) -> int:
        return len(self._transactions)

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def create(self, model: type[R], **attributes: Any) -> R:
        """Insert a new row and return it with its id assigned."""
        record = model(id=next(self._sequence), **attributes)
        self._table(model)[record.id] = record.model_dump()  # type: ignore[index]
        return record

    def save(self, record: Record) -> Record:
        """Persist the current attributes of ``record``."""
        if record.id is None:
            record.id = next(self._sequence)
        self._table(type(record))[record.id] = record.model_dump()
        return record

    def delete(self, record: Record) -> None:
        """Remove a row."""
        table = self._table(type(record))
        if record.id not in table:
            raise RecordNotFoundError(type(record), record.id)
        del table[record.id]

    def fetch(self, model: type[R], identifier: Any) -> R:
        """Return a new object loaded from the stored row."""
        row = self._tables.get(model, {}).get(identifier)
        if row is None:
            raise RecordNotFoundError(model, identifier)
        return model.model_validate(copy.deepcopy(row))

    def identify(self, obj: Any) -> Any:
        identifier = getattr(obj, "id", None)
        if identifier is None:
            raise ValueError(f"{type(obj).__name__} object has not been persisted")
        return identifier

    def all(self, model: type[R]) -> list[R]:
        return [
            model.model_validate(copy.deepcopy(row))
            for _, row in sorted(self._tables.get(model, {}).items())
        ]

    def first(self, model: type[R]) -> R | None:
        records = self.all(model)
        return records[0] if records else None

    def count(self, model: type[Record]) -> int:
        return len(self._tables.get(model, {}))

    def _table(self, model: type[Record]) -> dict[int, dict[str, Any]]:
        return self._tables.setdefault(model, {})

    def __repr__(self) -> str:
        counts = {model.__name__: len(rows) for model, rows in self._tables.items()}
        return f"InMemoryStore(rows={counts}, transactions={len(self._transactions)})"
