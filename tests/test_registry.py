# tests/test_registry.py
"""Tests for the manuscript registry operations."""

import tempfile
import threading
from pathlib import Path

import pytest

from scriptorium import ErrorKind, Permission, Registry
from scriptorium.provenance import ProvenanceLog
from scriptorium.store import JSONFileStore, MemoryStore

OWNER = "ST2J9EVYHPYFPJW8P9J7RZ7Y9T8E2ZZ0Q8E9Q6K8M"
COLLABORATOR = "ST3AM1A2B3C4D5E6F7G8H9J0KLMNOPQRSTUVWXYYZ"
NON_OWNER = "ST1J2EVYHPYFPJW8P9J7RZ7Y9T8E2ZZ0Q8E9Q6AAA"


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def registry():
    """Registry with an in-memory store and provenance log."""
    return Registry(provenance=ProvenanceLog())


@pytest.fixture
def registered(registry):
    """Registry holding one manuscript owned by OWNER."""
    registry.register(OWNER, "hash-001", "Ancient Text", "metadata")
    return registry


class TestRegister:
    """Test manuscript registration."""

    def test_register_success(self, registry):
        """Registering a new hash makes the caller its owner."""
        result = registry.register(OWNER, "hash-001", "Ancient Text", "metadata")

        assert result.success
        assert result.value is True

        manuscript = registry.get_details("hash-001").value
        assert manuscript.owner == OWNER
        assert manuscript.title == "Ancient Text"
        assert manuscript.metadata == "metadata"
        assert manuscript.versions == []
        assert manuscript.categories == []
        assert manuscript.tags == []
        assert manuscript.collaborators == {}
        assert manuscript.revenue_shares == {}

    def test_register_duplicate(self, registry):
        """Second registration of a hash fails even with different fields."""
        registry.register("owner1", "h1", "T", "m")
        result = registry.register("owner1", "h1", "T", "m")
        assert result.error == ErrorKind.ALREADY_EXISTS

        result = registry.register("someone-else", "h1", "Other", "other")
        assert result.error == ErrorKind.ALREADY_EXISTS
        assert registry.get_details("h1").value.owner == "owner1"
        assert registry.get_details("h1").value.title == "T"

    def test_register_empty_hash(self, registry):
        """Empty hash is rejected and nothing is stored."""
        result = registry.register(OWNER, "", "Empty Hash", "meta")

        assert not result.success
        assert result.error == ErrorKind.INVALID_KEY
        assert len(registry) == 0

    def test_register_blank_hash(self, registry):
        """Whitespace-only hash is rejected."""
        assert registry.register(OWNER, "   ", "T", "m").error == ErrorKind.INVALID_KEY
        assert len(registry) == 0

    def test_register_file(self, registry, temp_dir):
        """register_file hashes the file content."""
        path = temp_dir / "codex.txt"
        path.write_text("in principio erat verbum")

        result = registry.register_file(OWNER, path)

        assert result.success
        assert len(result.value) == 64
        manuscript = registry.get_details(result.value).value
        assert manuscript.title == "codex.txt"
        assert manuscript.owner == OWNER

    def test_register_file_twice(self, registry, temp_dir):
        """Same content cannot be registered twice."""
        path = temp_dir / "codex.txt"
        path.write_text("same content")

        registry.register_file(OWNER, path)
        result = registry.register_file(NON_OWNER, path)
        assert result.error == ErrorKind.ALREADY_EXISTS

    def test_register_file_missing(self, registry, temp_dir):
        """Missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            registry.register_file(OWNER, temp_dir / "missing.txt")


class TestGetDetails:
    """Test manuscript lookup."""

    def test_unknown_hash(self, registry):
        result = registry.get_details("nope")
        assert result.error == ErrorKind.NOT_FOUND
        assert registry.get("nope") is None

    def test_returns_snapshot(self, registered):
        """Changing a returned record does not change the registry."""
        manuscript = registered.get_details("hash-001").value
        manuscript.owner = NON_OWNER
        manuscript.tags.append("injected")

        fresh = registered.get_details("hash-001").value
        assert fresh.owner == OWNER
        assert fresh.tags == []


class TestTransferOwnership:
    """Test ownership transfer."""

    def test_transfer_by_owner(self, registered):
        result = registered.transfer_ownership(OWNER, "hash-001", COLLABORATOR)

        assert result.success
        assert registered.get("hash-001").owner == COLLABORATOR

    def test_transfer_by_non_owner(self, registry):
        """Scenario: non-owner cannot transfer and owner is unchanged."""
        registry.register("owner1", "h2", "T", "m")
        result = registry.transfer_ownership(NON_OWNER, "h2", "X")

        assert result.error == ErrorKind.NOT_OWNER
        assert registry.get("h2").owner == "owner1"

    def test_transfer_unknown(self, registry):
        result = registry.transfer_ownership(OWNER, "missing", COLLABORATOR)
        assert result.error == ErrorKind.NOT_FOUND

    def test_transfer_keeps_collaborators_and_shares(self, registered):
        registered.add_collaborator(OWNER, "hash-001", COLLABORATOR, ["edit"])
        registered.set_revenue_share(OWNER, "hash-001", COLLABORATOR, 30)

        registered.transfer_ownership(OWNER, "hash-001", NON_OWNER)

        manuscript = registered.get("hash-001")
        assert manuscript.collaborators == {COLLABORATOR: ["edit"]}
        assert manuscript.revenue_shares == {COLLABORATOR: 30}

    def test_previous_owner_loses_rights(self, registered):
        registered.transfer_ownership(OWNER, "hash-001", COLLABORATOR)

        assert registered.add_version(OWNER, "hash-001", "v2").error == ErrorKind.PERMISSION_DENIED
        assert registered.add_version(COLLABORATOR, "hash-001", "v2").success


class TestAddVersion:
    """Test version history."""

    def test_add_version(self, registered):
        result = registered.add_version(OWNER, "hash-001", "hash-001-v2", 2, "Updated content")

        assert result.success
        manuscript = registered.get("hash-001")
        assert manuscript.version_hashes == ["hash-001-v2"]
        assert manuscript.latest_version.number == 2
        assert manuscript.latest_version.notes == "Updated content"

    def test_versions_in_order(self, registered):
        for i in range(2, 5):
            registered.add_version(OWNER, "hash-001", f"v{i}", i, "")

        assert registered.get("hash-001").version_hashes == ["v2", "v3", "v4"]

    def test_add_version_non_owner(self, registered):
        result = registered.add_version(NON_OWNER, "hash-001", "v2", 2, "sneaky")

        assert result.error == ErrorKind.PERMISSION_DENIED
        assert registered.get("hash-001").versions == []

    def test_add_version_unknown(self, registry):
        assert registry.add_version(OWNER, "missing", "v2").error == ErrorKind.NOT_FOUND


class TestAddCategory:
    """Test categories and tags."""

    def test_add_category(self, registered):
        result = registered.add_category(OWNER, "hash-001", "History", ["ancient", "scroll"])

        assert result.success
        manuscript = registered.get("hash-001")
        assert manuscript.categories == ["History"]
        assert manuscript.tags == ["ancient", "scroll"]

    def test_categories_accumulate(self, registered):
        registered.add_category(OWNER, "hash-001", "History", ["a"])
        registered.add_category(OWNER, "hash-001", "Religion", ["b", "c"])

        manuscript = registered.get("hash-001")
        assert manuscript.categories == ["History", "Religion"]
        assert manuscript.tags == ["a", "b", "c"]

    def test_ten_tags_allowed(self, registered):
        tags = [f"tag{i}" for i in range(10)]
        assert registered.add_category(OWNER, "hash-001", "History", tags).success

    def test_too_many_tags(self, registered):
        """Eleven tags fail with no partial append."""
        tags = [f"tag{i}" for i in range(11)]
        result = registered.add_category(OWNER, "hash-001", "History", tags)

        assert result.error == ErrorKind.TOO_MANY_TAGS
        manuscript = registered.get("hash-001")
        assert manuscript.categories == []
        assert manuscript.tags == []

    def test_limit_is_per_call(self, registered):
        """Stored tags do not count toward the limit."""
        for i in range(3):
            batch = [f"t{i}-{j}" for j in range(10)]
            assert registered.add_category(OWNER, "hash-001", f"c{i}", batch).success

        assert len(registered.get("hash-001").tags) == 30

    def test_custom_limit(self):
        registry = Registry(max_tags_per_call=2)
        registry.register(OWNER, "h", "T", "m")

        assert registry.add_category(OWNER, "h", "c", ["a", "b", "c"]).error == ErrorKind.TOO_MANY_TAGS

    def test_add_category_non_owner(self, registered):
        result = registered.add_category(NON_OWNER, "hash-001", "History", ["x"])
        assert result.error == ErrorKind.PERMISSION_DENIED

    def test_non_owner_checked_before_tag_limit(self, registered):
        tags = [f"tag{i}" for i in range(11)]
        result = registered.add_category(NON_OWNER, "hash-001", "History", tags)
        assert result.error == ErrorKind.PERMISSION_DENIED

    def test_add_category_unknown(self, registry):
        assert registry.add_category(OWNER, "missing", "c", []).error == ErrorKind.NOT_FOUND


class TestCollaborators:
    """Test collaborator permissions."""

    def test_add_and_check(self, registry):
        """Scenario: granted permission is present, others are not."""
        registry.register("owner1", "h4", "T", "m")
        assert registry.add_collaborator("owner1", "h4", "C", ["edit"]).success

        assert registry.has_permission("h4", "C", "edit").value is True
        assert registry.has_permission("h4", "C", "delete").value is False

    def test_readd_replaces(self, registered):
        registered.add_collaborator(OWNER, "hash-001", COLLABORATOR, ["edit", "read"])
        registered.add_collaborator(OWNER, "hash-001", COLLABORATOR, ["publish"])

        assert registered.get("hash-001").collaborators[COLLABORATOR] == ["publish"]
        assert registered.has_permission("hash-001", COLLABORATOR, "edit").value is False

    def test_duplicates_dropped(self, registered):
        registered.add_collaborator(OWNER, "hash-001", COLLABORATOR, ["edit", "read", "edit"])
        assert registered.get("hash-001").collaborators[COLLABORATOR] == ["edit", "read"]

    def test_permission_enum(self, registered):
        registered.add_collaborator(OWNER, "hash-001", COLLABORATOR, [Permission.EDIT, "review"])

        assert registered.has_permission("hash-001", COLLABORATOR, "edit").value is True
        assert registered.has_permission("hash-001", COLLABORATOR, Permission.EDIT).value is True
        assert registered.has_permission("hash-001", COLLABORATOR, "review").value is True

    def test_unknown_collaborator_is_false(self, registered):
        result = registered.has_permission("hash-001", "stranger", "edit")
        assert result.success
        assert result.value is False

    def test_unknown_manuscript(self, registry):
        assert registry.has_permission("missing", COLLABORATOR, "edit").error == ErrorKind.NOT_FOUND

    def test_add_collaborator_non_owner(self, registered):
        result = registered.add_collaborator(NON_OWNER, "hash-001", NON_OWNER, ["edit"])

        assert result.error == ErrorKind.PERMISSION_DENIED
        assert registered.get("hash-001").collaborators == {}

    def test_collaborator_cannot_mutate(self, registered):
        """Permissions do not grant owner rights."""
        registered.add_collaborator(OWNER, "hash-001", COLLABORATOR, ["edit", "manage"])
        result = registered.add_version(COLLABORATOR, "hash-001", "v2")
        assert result.error == ErrorKind.PERMISSION_DENIED


class TestRevenueShares:
    """Test revenue share allocation."""

    def test_set_share(self, registered):
        assert registered.set_revenue_share(OWNER, "hash-001", COLLABORATOR, 30).success
        assert registered.get("hash-001").revenue_shares == {COLLABORATOR: 30}

    def test_limit_exceeded(self, registry):
        """Scenario: 60 + 50 exceeds the limit, state unchanged."""
        registry.register("owner1", "h3", "T", "m")
        assert registry.set_revenue_share("owner1", "h3", "A", 60).success

        result = registry.set_revenue_share("owner1", "h3", "B", 50)

        assert result.error == ErrorKind.SHARE_LIMIT_EXCEEDED
        shares = registry.get("h3").revenue_shares
        assert shares["A"] == 60
        assert "B" not in shares

    def test_exactly_one_hundred(self, registered):
        registered.set_revenue_share(OWNER, "hash-001", "A", 60)
        assert registered.set_revenue_share(OWNER, "hash-001", "B", 40).success
        assert registered.get("hash-001").total_share == 100

    def test_reset_replaces_own_share(self, registered):
        """Re-setting an account does not count its old share."""
        registered.set_revenue_share(OWNER, "hash-001", "A", 60)
        registered.set_revenue_share(OWNER, "hash-001", "B", 40)

        assert registered.set_revenue_share(OWNER, "hash-001", "A", 50).success
        assert registered.set_revenue_share(OWNER, "hash-001", "A", 60).success
        assert registered.set_revenue_share(OWNER, "hash-001", "A", 61).error == ErrorKind.SHARE_LIMIT_EXCEEDED
        assert registered.get("hash-001").revenue_shares == {"A": 60, "B": 40}

    def test_out_of_range(self, registered):
        assert registered.set_revenue_share(OWNER, "hash-001", "A", -1).error == ErrorKind.INVALID_SHARE
        assert registered.set_revenue_share(OWNER, "hash-001", "A", 101).error == ErrorKind.INVALID_SHARE
        assert registered.get("hash-001").revenue_shares == {}

    def test_non_finite_rejected(self, registered):
        """NaN and infinities never reach the stored shares."""
        for pct in (float("nan"), float("inf"), float("-inf")):
            assert registered.set_revenue_share(OWNER, "hash-001", "A", pct).error == ErrorKind.INVALID_SHARE
        assert registered.get("hash-001").revenue_shares == {}

        assert registered.set_revenue_share(OWNER, "hash-001", "A", 100).success
        assert registered.set_revenue_share(OWNER, "hash-001", "B", 100).error == ErrorKind.SHARE_LIMIT_EXCEEDED
        assert registered.get("hash-001").total_share <= 100

    def test_non_owner(self, registered):
        result = registered.set_revenue_share(NON_OWNER, "hash-001", NON_OWNER, 10)

        assert result.error == ErrorKind.PERMISSION_DENIED
        assert registered.get("hash-001").revenue_shares == {}

    def test_unknown(self, registry):
        assert registry.set_revenue_share(OWNER, "missing", "A", 10).error == ErrorKind.NOT_FOUND

    def test_sum_never_exceeds_limit(self, registered):
        for account, pct in [("A", 30), ("B", 30), ("C", 50), ("A", 70), ("D", 40), ("B", 0), ("D", 40)]:
            registered.set_revenue_share(OWNER, "hash-001", account, pct)
            assert registered.get("hash-001").total_share <= 100


class TestVerifyOwnership:
    """Test the ownership predicate."""

    def test_owner(self, registered):
        assert registered.verify_ownership("hash-001", OWNER).success

    def test_not_owner(self, registered):
        assert registered.verify_ownership("hash-001", NON_OWNER).error == ErrorKind.NOT_OWNER

    def test_unknown(self, registry):
        assert registry.verify_ownership("missing", OWNER).error == ErrorKind.NOT_FOUND

    def test_follows_transfer(self, registered):
        registered.transfer_ownership(OWNER, "hash-001", COLLABORATOR)

        assert registered.verify_ownership("hash-001", COLLABORATOR).success
        assert registered.verify_ownership("hash-001", OWNER).error == ErrorKind.NOT_OWNER


class TestQueries:
    """Test listing and search."""

    def test_find(self, registry):
        registry.register("alice", "h1", "One", "")
        registry.register("bob", "h2", "Two", "")
        registry.add_category("alice", "h1", "History", ["medieval"])
        registry.add_category("bob", "h2", "Poetry", ["medieval", "verse"])

        assert {m.content_hash for m in registry.find_by_owner("alice")} == {"h1"}
        assert {m.content_hash for m in registry.find_by_category("Poetry")} == {"h2"}
        assert {m.content_hash for m in registry.find_by_tag("medieval")} == {"h1", "h2"}
        assert len(registry.list_manuscripts()) == 2

    def test_container_protocol(self, registered):
        assert "hash-001" in registered
        assert "missing" not in registered
        assert len(registered) == 1
        assert [m.content_hash for m in registered] == ["hash-001"]

    def test_independent_registries(self):
        """Registries do not share state."""
        first = Registry()
        second = Registry()
        first.register(OWNER, "h1", "T", "m")

        assert "h1" in first
        assert "h1" not in second


class TestHistory:
    """Test provenance recorded by the registry."""

    def test_events_for_successes_only(self, registered):
        registered.add_version(OWNER, "hash-001", "v2", 2, "notes")
        registered.add_version(NON_OWNER, "hash-001", "v3", 3, "denied")
        registered.transfer_ownership(OWNER, "hash-001", COLLABORATOR)

        events = registered.history("hash-001").value
        assert [e.event_type for e in events] == ["Register", "AddVersion", "Transfer"]
        assert events[1].data["version_hash"] == "v2"
        assert events[2].data["new_owner"] == COLLABORATOR

    def test_duplicate_register_not_recorded(self, registered):
        registered.register(NON_OWNER, "hash-001", "T", "m")
        assert len(registered.history("hash-001").value) == 1

    def test_history_unknown(self, registered):
        assert registered.history("missing").error == ErrorKind.NOT_FOUND

    def test_history_without_log(self):
        registry = Registry()
        registry.register(OWNER, "h1", "T", "m")
        assert registry.history("h1").value == []


class TestFileBackedRegistry:
    """Test the registry over a JSON file store."""

    def test_state_survives_reload(self, temp_dir):
        registry = Registry(store=JSONFileStore(temp_dir))
        registry.register(OWNER, "hash-001", "Ancient Text", "metadata")
        registry.add_version(OWNER, "hash-001", "v2", 2, "notes")
        registry.add_collaborator(OWNER, "hash-001", COLLABORATOR, ["edit"])
        registry.set_revenue_share(OWNER, "hash-001", COLLABORATOR, 25)

        reloaded = Registry(store=JSONFileStore(temp_dir))
        manuscript = reloaded.get("hash-001")
        assert manuscript.owner == OWNER
        assert manuscript.version_hashes == ["v2"]
        assert reloaded.has_permission("hash-001", COLLABORATOR, "edit").value is True
        assert manuscript.revenue_shares == {COLLABORATOR: 25}
        assert reloaded.register(OWNER, "hash-001", "T", "m").error == ErrorKind.ALREADY_EXISTS


class TestConcurrency:
    """Test per-key mutual exclusion."""

    def test_concurrent_shares_respect_limit(self, registered):
        """Many threads racing for shares never push the total past 100."""
        barrier = threading.Barrier(20)
        results = []

        def claim(i):
            barrier.wait()
            results.append(registered.set_revenue_share(OWNER, "hash-001", f"acct{i}", 10))

        threads = [threading.Thread(target=claim, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if r.success) == 10
        assert registered.get("hash-001").total_share == 100

    def test_concurrent_registration(self, registry):
        """Exactly one of many racing registrations wins."""
        barrier = threading.Barrier(10)
        results = []

        def register(i):
            barrier.wait()
            results.append(registry.register(f"owner{i}", "contested", "T", "m"))

        threads = [threading.Thread(target=register, args=(i,)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if r.success) == 1
        assert sum(1 for r in results if r.error == ErrorKind.ALREADY_EXISTS) == 9

    def test_concurrent_versions(self, registered):
        """No appends are lost under contention."""
        def append(i):
            for j in range(10):
                registered.add_version(OWNER, "hash-001", f"v{i}-{j}")

        threads = [threading.Thread(target=append, args=(i,)) for i in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(registered.get("hash-001").versions) == 50


class TestLockTable:
    """Test that per-key locks do not outlive their operations."""

    def test_unknown_keys_leave_no_locks(self, registered):
        for i in range(50):
            key = f"missing-{i}"
            assert registered.get_details(key).error == ErrorKind.NOT_FOUND
            assert registered.has_permission(key, COLLABORATOR, "read").error == ErrorKind.NOT_FOUND
            assert registered.verify_ownership(key, OWNER).error == ErrorKind.NOT_FOUND
            assert registered.add_version(OWNER, key, "v2").error == ErrorKind.NOT_FOUND

        assert len(registered._locks) == 0

    def test_known_keys_leave_no_locks(self, registered):
        registered.add_version(OWNER, "hash-001", "v2")
        registered.add_version(NON_OWNER, "hash-001", "v3")
        registered.get_details("hash-001")

        assert len(registered._locks) == 0


class FailingLog(ProvenanceLog):
    """Provenance log whose writes always fail."""

    def record(self, event_type, content_hash, actor, **data):
        raise OSError("disk full")


class TestProvenanceFailure:
    """Test that a mutation whose event cannot be recorded is rolled back."""

    @pytest.fixture(params=["memory", "json"])
    def store(self, request, temp_dir):
        if request.param == "memory":
            return MemoryStore()
        return JSONFileStore(temp_dir / "store")

    def test_register_rolled_back(self, store):
        registry = Registry(store=store, provenance=FailingLog())

        with pytest.raises(OSError):
            registry.register(OWNER, "hash-001", "Ancient Text", "metadata")

        assert "hash-001" not in registry
        assert registry.get_details("hash-001").error == ErrorKind.NOT_FOUND
        assert len(registry.provenance) == 0

    def test_register_rolled_back_on_disk(self, temp_dir):
        store_dir = temp_dir / "store"
        registry = Registry(store=JSONFileStore(store_dir), provenance=FailingLog())

        with pytest.raises(OSError):
            registry.register(OWNER, "hash-001")

        assert list(store_dir.glob("*.json")) == []
        assert len(JSONFileStore(store_dir)) == 0

    def test_mutation_rolled_back(self, store):
        registry = Registry(store=store, provenance=ProvenanceLog())
        registry.register(OWNER, "hash-001", "Ancient Text", "metadata")
        registry.provenance = FailingLog()

        with pytest.raises(OSError):
            registry.add_version(OWNER, "hash-001", "v2", 2)
        with pytest.raises(OSError):
            registry.set_revenue_share(OWNER, "hash-001", "A", 40)

        manuscript = registry.get("hash-001")
        assert manuscript.version_hashes == []
        assert manuscript.revenue_shares == {}
        assert len(registry._locks) == 0
