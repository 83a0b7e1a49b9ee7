"""
Unit tests for snippets, snapshots and the dependency resolver.
"""

from datetime import datetime, timezone

import pytest

from snippet_integrity.core.errors import ValidationErrorType, ValidationSeverity
from snippet_integrity.core.resolver import SnippetDependencyResolver
from snippet_integrity.core.snippet import Snippet, SnippetValidationError, StoreSnapshot


class TestSnippet:
    """Test the Snippet data structure."""

    def test_from_dict_legacy_fields(self):
        """Test that camelCase and snipDependencies records are accepted."""
        snippet = Snippet.from_dict({
            "id": "a",
            "snipDependencies": ["s:;b:b"],
            "storeId": "s",
            "updatedAt": "2024-05-01T10:00:00Z",
            "color": "red",
        })

        assert snippet.dependencies == ["s:;b:b"]
        assert snippet.store_id == "s"
        assert snippet.updated_at == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        assert snippet.metadata == {"color": "red"}

    def test_to_dict_preserves_metadata(self):
        """Test that extra fields survive serialization."""
        data = Snippet("a", trigger=";a", color="red").to_dict()

        assert data["id"] == "a"
        assert data["color"] == "red"
        assert data["dependencies"] == []

    def test_empty_id_rejected(self):
        """Test that a snippet needs an id."""
        with pytest.raises(SnippetValidationError):
            Snippet("  ")

    def test_colon_in_id_rejected(self):
        """Test that ids cannot contain the dependency separator."""
        with pytest.raises(SnippetValidationError):
            Snippet("a:b")

    def test_bad_timestamp_ignored(self):
        """Test that an unparseable timestamp becomes None."""
        assert Snippet("a", updated_at="yesterday").updated_at is None


class TestStoreSnapshot:
    """Test snapshot construction and lookup."""

    def test_store_owns_snippets(self):
        """Test that snippets take the id of the store holding them."""
        snapshot = StoreSnapshot.from_dict({"s": [{"id": "a", "storeId": "elsewhere"}]})

        assert snapshot["s"].snippets[0].store_id == "s"

    def test_display_name(self):
        """Test both display name spellings."""
        snapshot = StoreSnapshot.from_dict({
            "a": {"displayName": "Store A", "snippets": []},
            "b": {"display_name": "Store B", "snippets": []},
        })

        assert snapshot["a"].display_name == "Store A"
        assert snapshot["b"].display_name == "Store B"

    def test_find_returns_first_match(self):
        """Test that lookups pick the first snippet with the id."""
        snapshot = StoreSnapshot.from_dict({"s": [{"id": "x", "content": "one"}, {"id": "x", "content": "two"}]})

        assert snapshot.find_snippet("s", "x").content == "one"
        assert snapshot.find_snippet("missing", "x") is None

    def test_fingerprint_tracks_changes(self):
        """Test that the fingerprint changes with the dependency graph."""
        first = StoreSnapshot.from_dict({"s": [{"id": "a"}]})
        same = StoreSnapshot.from_dict({"s": [{"id": "a"}]})
        changed = StoreSnapshot.from_dict({"s": [{"id": "a", "dependencies": ["s:;b:b"]}]})

        assert first.fingerprint == same.fingerprint
        assert first.fingerprint != changed.fingerprint

    def test_invalid_shape(self):
        """Test that non-dictionary data is rejected."""
        with pytest.raises(SnippetValidationError):
            StoreSnapshot.from_dict(["not", "a", "dict"])


class TestResolveDependency:
    """Test resolution of single tokens."""

    @pytest.fixture
    def resolver(self):
        return SnippetDependencyResolver()

    def test_resolves_existing_snippet(self, resolver, basic_snapshot):
        """Test that a token pointing at an existing snippet resolves."""
        resolution = resolver.resolve_dependency("store1:;t:s1", basic_snapshot)

        assert resolution.resolved is True
        assert resolution.snippet.id == "s1"
        assert resolution.failure_kind is None
        assert resolution.target == "store1:s1"

    def test_missing_store(self, resolver, basic_snapshot):
        """Test that an unknown store is MISSING_STORE."""
        resolution = resolver.resolve_dependency("store2:;t:s1", basic_snapshot)

        assert resolution.resolved is False
        assert resolution.failure_kind == ValidationErrorType.MISSING_STORE
        assert resolution.store_exists is False

    def test_missing_snippet(self, resolver, basic_snapshot):
        """Test that an unknown id in an existing store is MISSING_SNIPPET."""
        resolution = resolver.resolve_dependency("store1:;t:missing", basic_snapshot)

        assert resolution.resolved is False
        assert resolution.failure_kind == ValidationErrorType.MISSING_SNIPPET
        assert resolution.store_exists is True
        assert resolution.snippet_exists is False

    def test_invalid_format(self, resolver, basic_snapshot):
        """Test that a malformed token is INVALID_FORMAT."""
        resolution = resolver.resolve_dependency("store1:s1", basic_snapshot)

        assert resolution.resolved is False
        assert resolution.failure_kind == ValidationErrorType.INVALID_FORMAT

    def test_resolve_batch_records_stats(self, resolver, cross_store_snapshot):
        """Test batch resolution statistics."""
        results = resolver.resolve_dependencies(
            ["team:;addr:addr", "team:;x:missing", "nowhere:;x:y", "bad"], cross_store_snapshot
        )

        assert [r.resolved for r in results] == [True, False, False, False]
        stats = resolver.last_stats
        assert stats.total_dependencies == 4
        assert stats.valid_dependencies == 3
        assert stats.invalid_dependencies == 1
        assert stats.resolved_dependencies == 1
        assert stats.stores_referenced == 2


class TestValidateDependencies:
    """Test checking a list of tokens."""

    @pytest.fixture
    def resolver(self):
        return SnippetDependencyResolver()

    def test_missing_snippet_is_warning(self, resolver, basic_snapshot):
        """Test the default severity for missing snippets."""
        check = resolver.validate_dependencies(["store1:;t:missing"], basic_snapshot)

        assert check.is_valid is True
        assert check.errors == []
        assert len(check.warnings) == 1
        assert check.warnings[0].severity == ValidationSeverity.WARNING

    def test_missing_snippet_strict(self, resolver, basic_snapshot):
        """Test that strict mode makes missing snippets errors."""
        check = resolver.validate_dependencies(["store1:;t:missing"], basic_snapshot, strict=True)

        assert check.is_valid is False
        assert check.errors[0].kind == ValidationErrorType.MISSING_SNIPPET

    def test_missing_store_skipped_when_disabled(self, resolver, basic_snapshot):
        """Test that the store check can be turned off."""
        check = resolver.validate_dependencies(["store2:;t:s1"], basic_snapshot, check_store=False)

        assert check.is_valid is True
        assert check.issues == []
        assert [parsed.store_id for parsed in check.valid] == ["store2"]

    def test_warnings_suppressed(self, resolver, basic_snapshot):
        """Test that generate_warnings=False drops missing-snippet warnings."""
        check = resolver.validate_dependencies(["store1:;t:missing"], basic_snapshot, generate_warnings=False)

        assert check.issues == []


class TestFindDependents:
    """Test reverse dependency lookup."""

    def test_find_dependents_across_stores(self, cross_store_snapshot):
        """Test that dependents in other stores are found."""
        resolver = SnippetDependencyResolver()

        dependents = resolver.find_dependents(cross_store_snapshot, "team", "addr")

        assert [(store_id, snippet.id) for store_id, snippet in dependents] == [("personal", "sig")]

    def test_same_id_other_store_not_a_dependent(self):
        """Test that only tokens naming the target's store count."""
        snapshot = StoreSnapshot.from_dict({
            "a": [{"id": "x"}],
            "b": [{"id": "x"}, {"id": "y", "dependencies": ["b:;x:x"]}],
        })

        assert SnippetDependencyResolver().find_dependents(snapshot, "a", "x") == []

    def test_update_snippet_dependencies(self):
        """Test that updating dependencies returns a new snippet."""
        original = Snippet("a", dependencies=["s:;b:b"])

        updated = SnippetDependencyResolver().update_snippet_dependencies(original, ["s:;c:c"])

        assert updated.dependencies == ["s:;c:c"]
        assert updated.updated_at is not None
        assert original.dependencies == ["s:;b:b"]
