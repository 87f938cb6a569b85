"""
Tests for prefab.scope: the scope tree and fixture descriptor tables.
"""

import gc

import pytest
from pydantic import ValidationError

from prefab.errors import ConfigurationError, DuplicateFixtureError
from prefab.scope import FixtureDescriptor, RunState, Scope, ScopeState


def build_owner(ctx: object) -> str:
    return "owner"


# =============================================================================
# FixtureDescriptor Tests
# =============================================================================


class TestFixtureDescriptor:
    """Tests for FixtureDescriptor validation."""

    def test_creation(self) -> None:
        """Descriptor keeps its name and constructor."""
        descriptor = FixtureDescriptor(name="owner", constructor=build_owner)
        assert descriptor.name == "owner"
        assert descriptor.constructor is build_owner

    @pytest.mark.parametrize("name", ["", "1owner", "has space", "class", "_private", "store"])
    def test_invalid_names_rejected(self, name: str) -> None:
        """Names must be public, non-reserved identifiers."""
        with pytest.raises(ValidationError):
            FixtureDescriptor(name=name, constructor=build_owner)

    def test_constructor_must_be_callable(self) -> None:
        """A non-callable constructor is rejected."""
        with pytest.raises(ValidationError):
            FixtureDescriptor(name="owner", constructor="not callable")  # type: ignore[arg-type]

    def test_model_is_frozen(self) -> None:
        """Descriptors are immutable."""
        descriptor = FixtureDescriptor(name="owner", constructor=build_owner)
        with pytest.raises(ValidationError):
            descriptor.name = "other"  # type: ignore[misc]


# =============================================================================
# Scope tree
# =============================================================================


class TestScopeTree:
    """Tests for parent/child relations."""

    def test_top_level_scope_has_no_parent(self) -> None:
        """A scope created without a parent is top-level."""
        assert Scope("Root").parent is None

    def test_child_links_both_ways(self) -> None:
        """child() sets the parent and records the child."""
        root = Scope("Root")
        child = root.child("Child")
        assert child.parent is root
        assert root.children == [child]

    def test_lineage_is_outermost_first(self) -> None:
        """lineage() lists ancestors from the top down."""
        root = Scope("Root")
        leaf = root.child("Middle").child("Leaf")
        assert [s.name for s in leaf.lineage()] == ["Root", "Middle", "Leaf"]

    def test_attach_is_idempotent(self) -> None:
        """Attaching to the same parent twice is allowed."""
        root = Scope("Root")
        child = Scope("Child")
        child.attach(root)
        child.attach(root)
        assert root.children == [child]

    def test_attach_to_different_parent_rejected(self) -> None:
        """A scope has exactly one parent."""
        first = Scope("A")
        child = Scope("Child", parent=first)
        with pytest.raises(ConfigurationError):
            child.attach(Scope("B"))

    def test_attach_after_hook_resolution_rejected(self) -> None:
        """Resolved hooks would miss the new parent's callbacks."""
        child = Scope("Child")
        child.before_hook()
        with pytest.raises(ConfigurationError):
            child.attach(Scope("Parent"))

    def test_parent_is_weak_reference(self) -> None:
        """Children do not keep their parent alive."""
        parent = Scope("Parent")
        child = parent.child("Child")
        del parent
        gc.collect()
        assert child.parent is None


# =============================================================================
# Fixture declarations
# =============================================================================


class TestDeclareFixture:
    """Tests for Scope.declare_fixture and name lookups."""

    def test_state_allocated_on_first_declaration(self) -> None:
        """Scopes without fixtures carry no state."""
        scope = Scope("Group")
        assert scope.state is None
        scope.declare_fixture("owner", build_owner)
        assert isinstance(scope.state, ScopeState)
        assert scope.state.run_state is RunState.IDLE

    def test_declaration_order_preserved(self) -> None:
        """Descriptors keep declaration order."""
        scope = Scope("Group")
        for name in ["zeta", "alpha", "mid"]:
            scope.declare_fixture(name, build_owner)
        assert scope.state is not None
        assert list(scope.state.descriptors) == ["zeta", "alpha", "mid"]

    def test_duplicate_in_same_scope_rejected(self) -> None:
        """Re-declaring a name in one scope is a configuration error."""
        scope = Scope("Group")
        scope.declare_fixture("owner", build_owner)
        with pytest.raises(DuplicateFixtureError) as exc_info:
            scope.declare_fixture("owner", build_owner)
        assert exc_info.value.name == "owner"
        assert exc_info.value.scope_name == "Group"

    def test_invalid_name_raises_configuration_error(self) -> None:
        """Validation failures surface as ConfigurationError."""
        with pytest.raises(ConfigurationError):
            Scope("Group").declare_fixture("not valid", build_owner)

    def test_shadowing_ancestor_allowed(self) -> None:
        """A child may redeclare a parent's name; the child wins."""
        parent = Scope("Parent")
        child = parent.child("Child")
        parent.declare_fixture("owner", build_owner)
        child.declare_fixture("owner", build_owner)
        assert child.owner_of("owner") is child
        assert parent.owner_of("owner") is parent

    def test_owner_of_walks_ancestors_only(self) -> None:
        """Names from siblings are never found."""
        parent = Scope("Parent")
        left = parent.child("Left")
        right = parent.child("Right")
        parent.declare_fixture("shared", build_owner)
        left.declare_fixture("x", build_owner)

        assert right.owner_of("shared") is parent
        assert right.owner_of("x") is None
        assert left.owner_of("x") is left

    def test_visible_fixtures(self) -> None:
        """Visible names are the union along the lineage, outermost first."""
        parent = Scope("Parent")
        child = parent.child("Child")
        parent.declare_fixture("p", build_owner)
        child.declare_fixture("c", build_owner)
        assert child.visible_fixtures() == ["p", "c"]
        assert parent.visible_fixtures() == ["p"]

    def test_declaration_after_first_run_rejected(self) -> None:
        """Descriptors are fixed once a run has started."""
        scope = Scope("Group")
        scope.declare_fixture("owner", build_owner)
        assert scope.state is not None
        scope.state.run_state = RunState.ROLLED_BACK
        with pytest.raises(ConfigurationError):
            scope.declare_fixture("other", build_owner)


class TestScopeState:
    """Tests for ScopeState."""

    def test_reset_clears_run_tables(self) -> None:
        """reset() forgets cache, persisted refs, and errors."""
        state = ScopeState()
        state.cache["a"] = 1
        state.persisted["a"] = object()  # type: ignore[assignment]
        state.run_state = RunState.FAILED
        state.error = ValueError("x")
        state.transaction_open = True

        state.reset()

        assert state.cache == {}
        assert state.persisted == {}
        assert state.run_state is RunState.IDLE
        assert state.error is None
        assert state.transaction_open is False

    def test_active_states(self) -> None:
        """Only open runs are active."""
        state = ScopeState()
        assert not state.active
        state.run_state = RunState.READY
        assert state.active
        state.run_state = RunState.ROLLED_BACK
        assert not state.active
