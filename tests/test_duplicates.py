"""
Unit tests for duplicate-id detection and conflict resolution.
"""

import pytest

from snippet_integrity.core.duplicates import ConflictResolution
from snippet_integrity.core.snippet import Snippet, Store, StoreSnapshot


def snippets_with_ids(*ids):
    return [Snippet(snippet_id, content=f"content {index}") for index, snippet_id in enumerate(ids)]


class TestValidateStore:
    """Test duplicate detection within a store."""

    def test_duplicate_counting(self, duplicate_validator):
        """Test counts for ids [x, y, y, y, z]."""
        report = duplicate_validator.validate_store("s", "Store", snippets_with_ids("x", "y", "y", "y", "z"))

        assert report.is_valid is False
        assert report.total_snippets == 5
        assert report.duplicate_count == 2
        assert report.valid_snippets == 3
        assert len(report.duplicate_groups) == 1

        group = report.duplicate_groups[0]
        assert group.id == "y"
        assert group.count == 3
        assert group.indices == [1, 2, 3]

    def test_no_duplicates(self, duplicate_validator):
        """Test a clean store."""
        report = duplicate_validator.validate_store("s", "Store", snippets_with_ids("a", "b"))

        assert report.is_valid is True
        assert report.duplicate_groups == []
        assert "no duplicate" in report.message

    def test_suggested_ids_avoid_existing(self, duplicate_validator):
        """Test that suggestions skip ids already in the store."""
        report = duplicate_validator.validate_store("s", "Store", snippets_with_ids("y", "y", "y-1"))

        assert report.duplicate_groups[0].suggested_ids == ["y-2", "y-3", "y-4"]

    def test_cross_store_duplicates_allowed(self, duplicate_validator):
        """Test that the same id in two stores is fine."""
        reports = duplicate_validator.validate_multiple_stores([
            Store("a", [{"id": "x"}]),
            Store("b", [{"id": "x"}]),
        ])

        assert [report.is_valid for report in reports] == [True, True]
        assert duplicate_validator.last_stats.total_stores_validated == 2
        assert duplicate_validator.last_stats.total_duplicates_found == 0

    def test_validate_snapshot(self, duplicate_validator):
        """Test one report per store, keyed by store id."""
        snapshot = StoreSnapshot.from_dict({
            "a": [{"id": "x"}, {"id": "x"}],
            "b": [{"id": "x"}],
        })

        reports = duplicate_validator.validate_snapshot(snapshot)

        assert set(reports) == {"a", "b"}
        assert reports["a"].duplicate_count == 1
        assert reports["b"].is_valid is True
        assert duplicate_validator.last_stats.total_stores_validated == 2

    def test_history(self, duplicate_validator):
        """Test that the latest report per store is kept."""
        duplicate_validator.validate_store("s", "Store", snippets_with_ids("a", "a"))

        assert duplicate_validator.get_validation_history("s").duplicate_count == 1

        duplicate_validator.clear_validation_history("s")
        assert duplicate_validator.get_validation_history("s") is None


class TestCheckIdConflict:
    """Test interactive id checks."""

    def test_free_id(self, duplicate_validator):
        result = duplicate_validator.check_id_conflict("new", snippets_with_ids("a", "b"))

        assert result.is_valid is True

    def test_taken_id(self, duplicate_validator):
        """Test that a taken id lists the conflicting slots."""
        result = duplicate_validator.check_id_conflict("b", snippets_with_ids("a", "b"))

        assert result.is_valid is False
        assert result.duplicate_indices == [1]

    def test_own_slot_excluded(self, duplicate_validator):
        """Test that a snippet never conflicts with itself."""
        result = duplicate_validator.check_id_conflict("b", snippets_with_ids("a", "b"), exclude_index=1)

        assert result.is_valid is True


class TestGenerateUniqueId:
    """Test id generation."""

    def test_base_id_free(self, duplicate_validator):
        assert duplicate_validator.generate_unique_id("a", snippets_with_ids("b")) == "a"

    def test_numeric_suffix(self, duplicate_validator):
        """Test that the first free numeric suffix is used."""
        assert duplicate_validator.generate_unique_id("a", snippets_with_ids("a", "a-1")) == "a-2"

    def test_reserved_ids_skipped(self, duplicate_validator):
        assert duplicate_validator.generate_unique_id("a", snippets_with_ids("a"), reserved={"a-1"}) == "a-2"

    def test_custom_generator(self, duplicate_validator):
        """Test that a custom generator is retried until it yields a free id."""
        candidates = iter(["a", "b", "c"])

        result = duplicate_validator.generate_unique_id("a", snippets_with_ids("a", "b"), lambda: next(candidates))

        assert result == "c"

    def test_timestamp_fallback(self, duplicate_validator):
        """Test the fallback once every numeric suffix is taken."""
        existing = snippets_with_ids("a", *[f"a-{n}" for n in range(1, 1000)])

        result = duplicate_validator.generate_unique_id("a", existing)

        assert result.startswith("a-")
        assert result not in {snippet.id for snippet in existing}


class TestResolveConflicts:
    """Test conflict resolution policies."""

    @pytest.fixture
    def dated_snippets(self):
        return [
            Snippet("x", content="short", created_at="2024-01-02T00:00:00Z", updated_at="2024-01-05T00:00:00Z"),
            Snippet("y", content="other"),
            Snippet("x", content="much longer content", created_at="2024-01-01T00:00:00Z",
                    updated_at="2024-01-03T00:00:00Z"),
            Snippet("x", content="mid length", created_at="2024-01-03T00:00:00Z", updated_at="2024-01-04T00:00:00Z"),
        ]

    def resolve(self, validator, snippets, **resolution):
        report = validator.validate_store("s", "Store", snippets)
        return validator.resolve_conflicts(snippets, ConflictResolution(**resolution), report.duplicate_groups)

    def test_keep_first(self, duplicate_validator, dated_snippets):
        result = self.resolve(duplicate_validator, dated_snippets, action="keep-first")

        assert [s.content for s in result] == ["short", "other"]

    def test_keep_last(self, duplicate_validator, dated_snippets):
        result = self.resolve(duplicate_validator, dated_snippets, action="keep-last")

        assert [s.content for s in result] == ["other", "mid length"]

    def test_keep_newest(self, duplicate_validator, dated_snippets):
        """Test that the most recently updated copy survives."""
        result = self.resolve(duplicate_validator, dated_snippets, action="keep-newest")

        assert [s.content for s in result] == ["short", "other"]

    def test_keep_oldest(self, duplicate_validator, dated_snippets):
        """Test that the earliest created copy survives."""
        result = self.resolve(duplicate_validator, dated_snippets, action="keep-oldest")

        assert [s.content for s in result] == ["other", "much longer content"]

    @pytest.mark.parametrize("action", ["keep-newest", "keep-oldest"])
    def test_equal_timestamps_keep_first_seen(self, duplicate_validator, action):
        """Test that a timestamp tie keeps the earliest position."""
        stamp = "2024-01-01T00:00:00Z"
        snippets = [
            Snippet("x", content="first", created_at=stamp, updated_at=stamp),
            Snippet("x", content="second", created_at=stamp, updated_at=stamp),
        ]

        result = self.resolve(duplicate_validator, snippets, action=action)

        assert [s.content for s in result] == ["first"]

    @pytest.mark.parametrize("action, kept", [
        ("keep-oldest", "dated"),
        ("keep-newest", "undated"),
    ])
    def test_missing_timestamp_counts_as_now(self, duplicate_validator, action, kept):
        snippets = [
            Snippet("x", content="undated"),
            Snippet("x", content="dated", created_at="2024-01-01T00:00:00Z", updated_at="2024-01-01T00:00:00Z"),
        ]

        result = self.resolve(duplicate_validator, snippets, action=action)

        assert [s.content for s in result] == [kept]

    def test_rename(self, duplicate_validator):
        """Test that later copies get fresh ids that never collide."""
        snippets = snippets_with_ids("x", "x", "x", "x-1")

        result = self.resolve(duplicate_validator, snippets, action="rename")

        ids = [s.id for s in result]
        assert ids[0] == "x"
        assert ids[3] == "x-1"
        assert len(set(ids)) == 4
        assert ids[1:3] == ["x-2", "x-3"]

    def test_merge_content_priority(self, duplicate_validator, dated_snippets):
        """Test that a merge keeps the longest content."""
        result = self.resolve(duplicate_validator, dated_snippets, action="merge")

        assert [s.id for s in result] == ["x", "y"]
        assert result[0].content == "much longer content"

    def test_merge_metadata_priority(self, duplicate_validator, dated_snippets):
        """Test that a metadata merge keeps the newest copy wholesale."""
        result = self.resolve(duplicate_validator, dated_snippets, action="merge", merge_strategy="metadata-priority")

        assert result[0] is dated_snippets[0]

    def test_merge_user_choice(self, duplicate_validator, dated_snippets):
        """Test that the caller's choice wins."""
        resolution = ConflictResolution("merge", "user-choice", choose=lambda group: group[-1])
        report = duplicate_validator.validate_store("s", "Store", dated_snippets)

        result = duplicate_validator.resolve_conflicts(dated_snippets, resolution, report.duplicate_groups)

        assert result[0].content == "mid length"

    def test_input_not_modified(self, duplicate_validator, dated_snippets):
        """Test that resolution returns a new list."""
        before = list(dated_snippets)

        self.resolve(duplicate_validator, dated_snippets, action="rename")

        assert dated_snippets == before
        assert [s.id for s in dated_snippets] == ["x", "y", "x", "x"]

    def test_conflicts_resolved_counted(self, duplicate_validator, dated_snippets):
        self.resolve(duplicate_validator, dated_snippets, action="keep-first")

        assert duplicate_validator.last_stats.total_conflicts_resolved == 2

    def test_unknown_action(self):
        with pytest.raises(ValueError):
            ConflictResolution("keep-random")
