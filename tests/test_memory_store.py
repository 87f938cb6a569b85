"""
Tests for prefab.stores.memory.InMemoryStore.
"""

import pytest

from prefab.errors import RecordNotFoundError
from prefab.stores import InMemoryStore, ObjectStore, Record


class Owner(Record):
    name: str


class Thing(Record):
    name: str = ""
    tags: list[str] = []


class TestRecords:
    """Tests for create, fetch, save, and delete."""

    def test_satisfies_protocol(self, store: InMemoryStore) -> None:
        """InMemoryStore is an ObjectStore."""
        assert isinstance(store, ObjectStore)

    def test_create_assigns_sequential_ids(self, store: InMemoryStore) -> None:
        """Ids are unique across models."""
        owner = store.create(Owner, name="a")
        thing = store.create(Thing, name="b")
        assert owner.id == 1
        assert thing.id == 2
        assert store.identify(thing) == 2

    def test_fetch_returns_new_object(self, store: InMemoryStore) -> None:
        """Every fetch builds a separate object."""
        owner = store.create(Owner, name="a")
        first = store.fetch(Owner, owner.id)
        second = store.fetch(Owner, owner.id)
        assert first == second
        assert first is not second
        assert first is not owner

    def test_mutation_without_save_not_stored(self, store: InMemoryStore) -> None:
        """Objects are detached from stored rows."""
        thing = store.create(Thing, tags=["x"])
        thing.tags.append("y")
        thing.name = "changed"
        fetched = store.fetch(Thing, thing.id)
        assert fetched.tags == ["x"]
        assert fetched.name == ""

    def test_save_persists_changes(self, store: InMemoryStore) -> None:
        """save() writes current attributes."""
        owner = store.create(Owner, name="a")
        owner.name = "b"
        store.save(owner)
        assert store.fetch(Owner, owner.id).name == "b"

    def test_save_new_record_assigns_id(self, store: InMemoryStore) -> None:
        """Saving an unsaved record inserts it."""
        owner = store.save(Owner(name="new"))
        assert owner.id is not None
        assert store.count(Owner) == 1

    def test_fetch_missing(self, store: InMemoryStore) -> None:
        """Missing rows raise RecordNotFoundError."""
        with pytest.raises(RecordNotFoundError) as exc_info:
            store.fetch(Owner, 99)
        assert exc_info.value.identifier == 99
        assert isinstance(exc_info.value, LookupError)

    def test_delete(self, store: InMemoryStore) -> None:
        """Deleted rows can no longer be fetched."""
        owner = store.create(Owner, name="a")
        store.delete(owner)
        with pytest.raises(RecordNotFoundError):
            store.fetch(Owner, owner.id)
        with pytest.raises(RecordNotFoundError):
            store.delete(owner)

    def test_identify_unsaved(self, store: InMemoryStore) -> None:
        """Objects without an id cannot be identified."""
        with pytest.raises(ValueError):
            store.identify(Owner(name="a"))

    def test_all_and_first(self, store: InMemoryStore) -> None:
        """all() returns rows in id order."""
        assert store.first(Owner) is None
        store.create(Owner, name="a")
        store.create(Owner, name="b")
        assert [o.name for o in store.all(Owner)] == ["a", "b"]
        first = store.first(Owner)
        assert first is not None
        assert first.name == "a"


class TestTransactions:
    """Tests for nested snapshot transactions."""

    def test_rollback_restores_snapshot(self, store: InMemoryStore) -> None:
        """Writes after begin are discarded by rollback."""
        store.create(Owner, name="kept")
        store.begin_transaction(joinable=False)
        store.create(Owner, name="discarded")
        store.rollback_transaction()
        assert [o.name for o in store.all(Owner)] == ["kept"]

    def test_nested_non_joinable_rolls_back_independently(self, store: InMemoryStore) -> None:
        """Inner rollback keeps the outer transaction's writes."""
        store.begin_transaction(joinable=False)
        store.create(Owner, name="outer")
        store.begin_transaction(joinable=False)
        store.create(Owner, name="inner")

        store.rollback_transaction()
        assert [o.name for o in store.all(Owner)] == ["outer"]

        store.rollback_transaction()
        assert store.count(Owner) == 0

    def test_joinable_inside_transaction_joins(self, store: InMemoryStore) -> None:
        """A joined transaction's rollback leaves data to the outer one."""
        store.begin_transaction(joinable=False)
        store.begin_transaction(joinable=True)
        store.create(Owner, name="joined")
        store.rollback_transaction()

        assert store.count(Owner) == 1
        assert store.transaction_depth == 1
        store.rollback_transaction()
        assert store.count(Owner) == 0

    def test_joinable_without_outer_takes_snapshot(self, store: InMemoryStore) -> None:
        """The outermost transaction always snapshots."""
        store.begin_transaction()
        store.create(Owner, name="a")
        store.rollback_transaction()
        assert store.count(Owner) == 0

    def test_rollback_without_transaction(self, store: InMemoryStore) -> None:
        """Unbalanced rollback is an error."""
        with pytest.raises(RuntimeError):
            store.rollback_transaction()

    def test_transaction_context_manager(self, store: InMemoryStore) -> None:
        """Commit on success, roll back on error."""
        with store.transaction():
            store.create(Owner, name="committed")
        with pytest.raises(KeyError):
            with store.transaction():
                store.create(Owner, name="rolled back")
                raise KeyError("x")

        assert [o.name for o in store.all(Owner)] == ["committed"]
        assert store.transaction_depth == 0

    def test_ids_not_reused_after_rollback(self, store: InMemoryStore) -> None:
        """The id sequence is outside transactional state."""
        store.begin_transaction(joinable=False)
        first = store.create(Owner, name="a")
        store.rollback_transaction()
        second = store.create(Owner, name="b")
        assert second.id != first.id
