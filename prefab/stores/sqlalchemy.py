"""
SQLAlchemy-backed object store.

Wraps an ORM Session. The outermost transaction is the session's root
transaction; non-joinable transactions opened inside it are SAVEPOINTs, so
each group run and each test can be rolled back on its own.
"""

from typing import Any, TypeVar

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session, SessionTransaction

from prefab.errors import RecordNotFoundError

T = TypeVar("T")


class SQLAlchemyStore:
    """Object store over a SQLAlchemy Session.

    Example:
        >>> store = SQLAlchemyStore(Session(engine))
        >>> store.begin_transaction(joinable=False)
        >>> owner = store.create(Owner, name="owner1")
        >>> store.fetch(Owner, store.identify(owner)).name
        'owner1'
        >>> store.rollback_transaction()
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        # One entry per begin_transaction; None marks a joined transaction.
        self._transactions: list[SessionTransaction | None] = []

    def begin_transaction(self, joinable: bool = True) -> None:
        if not self.session.in_transaction():
            self._transactions.append(self.session.begin())
        elif joinable:
            self._transactions.append(None)
        else:
            self._transactions.append(self.session.begin_nested())

    def rollback_transaction(self) -> None:
        if not self._transactions:
            raise RuntimeError("No open transaction to roll back")
        transaction = self._transactions.pop()
        if transaction is not None and transaction.is_active:
            transaction.rollback()

    @property
    def transaction_depth(self) -> int:
        return len(self._transactions)

    def create(self, model: type[T], **attributes: Any) -> T:
        """Add a new mapped object and flush it so it has an identity."""
        obj = model(**attributes)
        self.session.add(obj)
        self.session.flush()
        return obj

    def fetch(self, model: type[T], identifier: Any) -> T:
        """Reload ``model`` by primary key, discarding unsaved in-memory changes."""
        with self.session.no_autoflush:
            obj = self.session.get(model, identifier, populate_existing=True)
        if obj is None:
            raise RecordNotFoundError(model, identifier)
        return obj

    def identify(self, obj: Any) -> Any:
        state = sa_inspect(obj)
        if state.identity is None:
            self.session.flush()
        identity = state.identity
        if identity is None:
            raise ValueError(f"{type(obj).__name__} object has not been persisted")
        return identity[0] if len(identity) == 1 else identity

    def __repr__(self) -> str:
        return f"SQLAlchemyStore(transactions={len(self._transactions)})"
