"""
Object stores used to persist and re-fetch fabricated fixtures.

The lifecycle only needs transactions, identity, and fetch-by-identifier;
creating records is left to fixture constructors.
"""

from typing import Any, Protocol, runtime_checkable

from prefab.stores.memory import InMemoryStore, Record


@runtime_checkable
class ObjectStore(Protocol):
    """Interface the lifecycle controller requires from a backing store."""

    def begin_transaction(self, joinable: bool = True) -> None:
        """Open a transaction; non-joinable ones never merge into an outer one."""
        ...

    def rollback_transaction(self) -> None:
        """Roll back the innermost open transaction."""
        ...

    def fetch(self, model: type, identifier: Any) -> Any:
        """Load a fresh copy of a persisted object.

        Raises:
            RecordNotFoundError: If no such object exists.
        """
        ...

    def identify(self, obj: Any) -> Any:
        """Identifier under which ``obj`` can be fetched again."""
        ...


__all__ = ["InMemoryStore", "ObjectStore", "Record"]
