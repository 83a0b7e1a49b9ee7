"""
Unit tests for dependency token parsing and formatting.
"""

import pytest

from snippet_integrity.core.dependency import (
    convert_to_unified_format,
    format_dependency,
    is_valid_dependency,
    parse_dependency,
)
from snippet_integrity.core.errors import DependencyFormatError


class TestParseDependency:
    """Test parse_dependency."""

    def test_parse_valid_token(self):
        """Test that a well-formed token is split into its components."""
        parsed = parse_dependency("team-store:;greeting:abc123")

        assert parsed.is_valid is True
        assert parsed.store_id == "team-store"
        assert parsed.trigger == ";greeting"
        assert parsed.snippet_id == "abc123"
        assert parsed.original == "team-store:;greeting:abc123"
        assert parsed.error is None

    def test_parse_strips_whitespace(self):
        """Test that surrounding whitespace is removed from each part."""
        parsed = parse_dependency(" store1 : ;t : s1 ")

        assert parsed.is_valid is True
        assert (parsed.store_id, parsed.trigger, parsed.snippet_id) == ("store1", ";t", "s1")

    @pytest.mark.parametrize("token", ["", "a", "a:b", "a:b:c:d", "::::"])
    def test_parse_wrong_part_count(self, token):
        """Test that anything but three parts is invalid."""
        parsed = parse_dependency(token)

        assert parsed.is_valid is False
        assert "Invalid dependency format" in parsed.error

    @pytest.mark.parametrize("token,message", [
        (" :t:id", "Store id cannot be empty"),
        ("store:  :id", "Trigger cannot be empty"),
        ("store:t:", "Snippet id cannot be empty"),
    ])
    def test_parse_blank_part(self, token, message):
        """Test that blank parts are reported individually."""
        parsed = parse_dependency(token)

        assert parsed.is_valid is False
        assert parsed.error == message

    def test_parse_non_string(self):
        """Test that non-string input is invalid instead of raising."""
        parsed = parse_dependency(None)

        assert parsed.is_valid is False
        assert "must be a string" in parsed.error

    def test_to_dict(self):
        """Test dictionary form of a parsed token."""
        data = parse_dependency("s:t:i").to_dict()

        assert data == {
            "store_id": "s",
            "trigger": "t",
            "snippet_id": "i",
            "original": "s:t:i",
            "is_valid": True,
            "error": None,
        }


class TestFormatDependency:
    """Test format_dependency."""

    @pytest.mark.parametrize("parts", [
        ("store1", ";t", "s1"),
        ("team-store", ";greeting", "abc123"),
        ("s", "t", "x-1"),
    ])
    def test_format_then_parse(self, parts):
        """Test that a formatted token parses back to the same components."""
        parsed = parse_dependency(format_dependency(*parts))

        assert parsed.is_valid is True
        assert (parsed.store_id, parsed.trigger, parsed.snippet_id) == parts

    def test_format_trims_padded_components(self):
        """Test that padding is trimmed, so the round trip yields trimmed components."""
        token = format_dependency(" a", "b ", "c")

        assert token == "a:b:c"
        parsed = parse_dependency(token)
        assert (parsed.store_id, parsed.trigger, parsed.snippet_id) == ("a", "b", "c")

    def test_format_rejects_colon(self):
        """Test that components containing the separator are refused."""
        with pytest.raises(DependencyFormatError):
            format_dependency("store", ";t", "a:b")

    def test_format_rejects_blank(self):
        """Test that blank components are refused."""
        with pytest.raises(DependencyFormatError):
            format_dependency("store", "   ", "id")

    def test_is_valid_dependency(self):
        """Test the boolean shortcut."""
        assert is_valid_dependency("a:b:c") is True
        assert is_valid_dependency("a:b") is False


class TestConvertToUnifiedFormat:
    """Test conversion of legacy dependency references."""

    def test_valid_tokens_unchanged(self):
        """Test that unified tokens pass through."""
        assert convert_to_unified_format(["team:;a:a1"], "personal") == ["team:;a:a1"]

    def test_legacy_trigger_with_lookup(self):
        """Test that a legacy trigger uses the looked-up id."""
        converted = convert_to_unified_format([";sig"], "personal", {";sig": "sig-01"})

        assert converted == ["personal:;sig:sig-01"]

    def test_legacy_trigger_without_lookup(self):
        """Test the placeholder id for an unknown legacy trigger."""
        assert convert_to_unified_format([";sig"], "personal") == ["personal:;sig:legacy-sig"]

    def test_bare_id(self):
        """Test that a bare id becomes a token in the current store."""
        assert convert_to_unified_format(["abc"], "personal") == ["personal:;abc:abc"]
