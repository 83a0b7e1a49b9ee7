"""
Dependency Token Grammar

Cross-store references use one unified format:

    storeId:trigger:snippetId        e.g. "team-store:;greeting:abc123"

A token is valid only when it splits on ':' into exactly three parts and none of
them is blank. There is no escaping, so identifiers and triggers containing ':'
cannot be expressed; format_dependency refuses to build such tokens.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import DependencyFormatError

logger = logging.getLogger(__name__)

SEPARATOR = ":"
EXPECTED_FORMAT = "storeId:trigger:snippetId"


@dataclass
class ParsedDependency:
    """Components of a dependency token"""
    store_id: str
    trigger: str
    snippet_id: str
    original: str
    is_valid: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "store_id": self.store_id,
            "trigger": self.trigger,
            "snippet_id": self.snippet_id,
            "original": self.original,
            "is_valid": self.is_valid,
            "error": self.error,
        }


def _invalid(original: Any, message: str, parts: Optional[List[str]] = None) -> ParsedDependency:
    store_id, trigger, snippet_id = parts if parts else ("", "", "")
    return ParsedDependency(
        store_id=store_id,
        trigger=trigger,
        snippet_id=snippet_id,
        original=original if isinstance(original, str) else repr(original),
        is_valid=False,
        error=message,
    )


def parse_dependency(token: Any) -> ParsedDependency:
    """
    Parse a dependency token into its components.

    Never raises: malformed input comes back with ``is_valid`` False and an
    explanatory ``error``.

    Args:
        token: Dependency token string

    Returns:
        ParsedDependency with stripped components

    Example:
        >>> parsed = parse_dependency("store1:;t:s1")
        >>> parsed.store_id, parsed.trigger, parsed.snippet_id, parsed.is_valid
        ('store1', ';t', 's1', True)
    """
    if not isinstance(token, str):
        return _invalid(token, f"Dependency must be a string, got {type(token).__name__}")

    parts = token.split(SEPARATOR)
    if len(parts) != 3:
        return _invalid(token, f'Invalid dependency format. Expected "{EXPECTED_FORMAT}", got "{token}"')

    store_id, trigger, snippet_id = (part.strip() for part in parts)
    stripped = [store_id, trigger, snippet_id]

    if not store_id:
        return _invalid(token, "Store id cannot be empty", stripped)
    if not trigger:
        return _invalid(token, "Trigger cannot be empty", stripped)
    if not snippet_id:
        return _invalid(token, "Snippet id cannot be empty", stripped)

    return ParsedDependency(
        store_id=store_id,
        trigger=trigger,
        snippet_id=snippet_id,
        original=token,
        is_valid=True,
    )


def format_dependency(store_id: str, trigger: str, snippet_id: str) -> str:
    """
    Build a dependency token from its components.

    Surrounding whitespace is trimmed from each component, as parse_dependency
    does, so the round trip holds for trimmed components:
    format_dependency(" a", "b ", "c") gives "a:b:c".

    Args:
        store_id: Store holding the target snippet
        trigger: Trigger of the target snippet
        snippet_id: Id of the target snippet

    Returns:
        Token string

    Raises:
        DependencyFormatError: If a component is blank or contains ':'
    """
    components = {"store_id": store_id, "trigger": trigger, "snippet_id": snippet_id}
    cleaned = []
    for name, value in components.items():
        if not isinstance(value, str) or not value.strip():
            raise DependencyFormatError(f"Dependency component '{name}' is required")
        if SEPARATOR in value:
            raise DependencyFormatError(f"Dependency component '{name}' must not contain '{SEPARATOR}': {value!r}")
        cleaned.append(value.strip())
    return SEPARATOR.join(cleaned)


def is_valid_dependency(token: Any) -> bool:
    return parse_dependency(token).is_valid


def convert_to_unified_format(dependencies: List[str], current_store_id: str,
                              trigger_lookup: Optional[Dict[str, str]] = None) -> List[str]:
    """
    Convert legacy dependency references to unified tokens.

    Handles three shapes:
    - valid tokens are returned unchanged
    - legacy triggers (";greeting") become tokens in the current store, with the id
      taken from ``trigger_lookup`` or a "legacy-<name>" placeholder
    - anything else is taken as a bare snippet id in the current store

    Args:
        dependencies: Dependency references in any supported shape
        current_store_id: Store that owns the referencing snippet
        trigger_lookup: Optional mapping of trigger to snippet id

    Returns:
        List of tokens, in the original order

    Raises:
        DependencyFormatError: If a legacy reference cannot be expressed as a token
    """
    lookup = trigger_lookup or {}
    converted = []

    for dependency in dependencies:
        if is_valid_dependency(dependency):
            converted.append(dependency)
            continue

        reference = str(dependency).strip()
        if reference.startswith(";"):
            snippet_id = lookup.get(reference) or f"legacy-{reference.lstrip(';')}"
            converted.append(format_dependency(current_store_id, reference, snippet_id))
        else:
            converted.append(format_dependency(current_store_id, f";{reference}", reference))
        logger.debug(f"Converted legacy dependency {dependency!r} to {converted[-1]!r}")

    return converted
