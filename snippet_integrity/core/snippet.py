"""
Core Snippet Data Structures

This module defines the data model shared by every part of the consistency engine:
individual snippets, the stores that own them, and the read-only snapshot of all
stores that a validation call works against.

The Snippet class accepts both historical record shapes:
- plain text snippets carrying a ``dependencies`` list
- enhanced snippets carrying ``snipDependencies`` and camelCase audit fields

Identifiers are only unique within their owning store. Nothing here enforces that;
the duplicate validator checks it.
"""

import copy
import hashlib
import json
import logging
from datetime import datetime, timezone
from functools import cached_property
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class SnippetError(Exception):
    """Base exception for snippet operations"""
    pass


class SnippetValidationError(SnippetError):
    """Raised when snippet data is structurally invalid"""
    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Convert a stored timestamp into an aware datetime.

    Accepts datetimes, ISO-8601 strings (including a trailing ``Z``) and epoch
    milliseconds. Naive values are taken as UTC.

    Args:
        value: Raw timestamp value

    Returns:
        Aware datetime, or None if the value is empty or unparseable
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning(f"Ignoring unparseable timestamp {value!r}")
            return None
    else:
        logger.warning(f"Ignoring timestamp of unsupported type {type(value).__name__}")
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class Snippet:
    """
    A text snippet that may reference snippets in other stores.

    Example snippet structure:
    {
        "id": "sig-01",
        "trigger": ";sig",
        "content": "Best regards, ...",
        "dependencies": ["team:;addr:addr-01"],
        "storeId": "personal",
        "updatedAt": "2024-05-01T10:00:00Z"
    }
    """

    def __init__(self,
                 id: str,
                 trigger: str = "",
                 content: str = "",
                 dependencies: Optional[List[str]] = None,
                 store_id: Optional[str] = None,
                 description: str = "",
                 tags: Optional[List[str]] = None,
                 created_at: Any = None,
                 updated_at: Any = None,
                 created_by: Optional[str] = None,
                 updated_by: Optional[str] = None,
                 **kwargs):
        """
        Initialize a Snippet.

        Args:
            id: Identifier, unique within the owning store (required)
            trigger: Text pattern that expands to this snippet
            content: Snippet body, opaque to the engine
            dependencies: Ordered dependency tokens ("storeId:trigger:snippetId")
            store_id: Owning store, when known
            description: Free-form description
            tags: Free-form tags
            created_at: Creation timestamp (datetime or ISO string)
            updated_at: Last update timestamp (datetime or ISO string)
            created_by: Creating actor
            updated_by: Last updating actor
            **kwargs: Additional metadata, preserved on serialization

        Raises:
            SnippetValidationError: If the id is empty or contains ':'
        """
        if not isinstance(id, str) or not id.strip():
            raise SnippetValidationError("Snippet id must be a non-empty string")
        self.id = id.strip()

        self.trigger = "" if trigger is None else str(trigger)
        self.content = "" if content is None else str(content)

        self.dependencies: List[str] = []
        if dependencies is not None:
            if isinstance(dependencies, (list, tuple)):
                # Kept verbatim: malformed tokens are reported by validation, not dropped here
                self.dependencies = [str(dep) for dep in dependencies]
            else:
                logger.warning(f"dependencies for snippet '{self.id}' is not a list, using empty default")

        self.store_id = store_id.strip() if isinstance(store_id, str) and store_id.strip() else None
        self.description = "" if description is None else str(description)
        self.tags = [str(tag) for tag in tags] if isinstance(tags, (list, tuple)) else []

        self.created_at = parse_timestamp(created_at)
        self.updated_at = parse_timestamp(updated_at)
        self.created_by = created_by
        self.updated_by = updated_by

        self.metadata = dict(kwargs)

        self.validate()

    def validate(self) -> None:
        """
        Check the identity contract.

        Raises:
            SnippetValidationError: If validation fails
        """
        if ":" in self.id:
            raise SnippetValidationError(
                f"Snippet id '{self.id}' must not contain ':' (reserved as the dependency separator)"
            )
        if not isinstance(self.dependencies, list):
            raise SnippetValidationError("dependencies must be a list")

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize the snippet to a JSON-safe dictionary.

        Returns:
            Dictionary representation of the snippet
        """
        result = {
            "id": self.id,
            "trigger": self.trigger,
            "content": self.content,
            "dependencies": list(self.dependencies),
            "store_id": self.store_id,
            "description": self.description,
            "tags": list(self.tags),
            "created_at": _format_timestamp(self.created_at),
            "updated_at": _format_timestamp(self.updated_at),
            "created_by": self.created_by,
            "updated_by": self.updated_by,
        }

        for key, value in self.metadata.items():
            if key not in result:
                result[key] = value

        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Snippet':
        """
        Create a Snippet from dictionary data, accepting legacy field names.

        Args:
            data: Dictionary containing snippet data

        Returns:
            New Snippet instance

        Raises:
            SnippetValidationError: If data is not a dictionary or has no usable id

        Example:
            >>> snippet = Snippet.from_dict({"id": "a", "snipDependencies": ["s:;t:b"]})
            >>> snippet.dependencies
            ['s:;t:b']
        """
        if not isinstance(data, dict):
            raise SnippetValidationError("Snippet data must be a dictionary")

        kwargs = dict(data)

        snippet_id = kwargs.pop("id", None)
        if not snippet_id:
            raise SnippetValidationError("Missing required field: id")

        trigger = kwargs.pop("trigger", "")
        content = kwargs.pop("content", "")

        # Enhanced snippets store their references under snipDependencies
        dependencies = kwargs.pop("dependencies", None)
        legacy_dependencies = kwargs.pop("snipDependencies", None)
        if dependencies is None:
            dependencies = legacy_dependencies

        store_id = kwargs.pop("store_id", None)
        legacy_store = kwargs.pop("storeId", None)
        if store_id is None:
            store_id = legacy_store

        fields = {}
        for name, legacy in (("created_at", "createdAt"), ("updated_at", "updatedAt"),
                             ("created_by", "createdBy"), ("updated_by", "updatedBy")):
            value = kwargs.pop(name, None)
            legacy_value = kwargs.pop(legacy, None)
            fields[name] = value if value is not None else legacy_value

        description = kwargs.pop("description", "")
        tags = kwargs.pop("tags", None)

        return cls(
            id=snippet_id,
            trigger=trigger,
            content=content,
            dependencies=dependencies,
            store_id=store_id,
            description=description,
            tags=tags,
            **fields,
            **kwargs
        )

    def copy(self, **changes) -> 'Snippet':
        """
        Return a copy of this snippet with the given attributes replaced.

        Example:
            >>> renamed = snippet.copy(id="greeting-1")
        """
        clone = copy.copy(self)
        clone.dependencies = list(self.dependencies)
        clone.tags = list(self.tags)
        clone.metadata = dict(self.metadata)
        for name, value in changes.items():
            if name in ("created_at", "updated_at"):
                value = parse_timestamp(value)
            setattr(clone, name, value)
        clone.validate()
        return clone

    def qualified_id(self, default_store_id: Optional[str] = None) -> str:
        """Identity of this snippet across stores ("storeId:snippetId")"""
        return qualify(self.store_id or default_store_id or "", self.id)

    def __repr__(self) -> str:
        return f"Snippet(id='{self.id}', trigger='{self.trigger}', dependencies={self.dependencies})"


def qualify(store_id: str, snippet_id: str) -> str:
    return f"{store_id}:{snippet_id}"


SnippetLike = Union[Snippet, Dict[str, Any]]


def coerce_snippet(value: SnippetLike, store_id: Optional[str] = None) -> Snippet:
    """Accept a Snippet or its dictionary form, filling in the owning store if missing"""
    snippet = value if isinstance(value, Snippet) else Snippet.from_dict(value)
    if store_id and not snippet.store_id:
        snippet = snippet.copy(store_id=store_id)
    return snippet


class Store:
    """
    A named, independently owned collection of snippets.

    Ids should be unique within a store, but nothing here guarantees it.
    """

    def __init__(self, store_id: str, snippets: Optional[List[SnippetLike]] = None,
                 display_name: Optional[str] = None):
        if not isinstance(store_id, str) or not store_id.strip():
            raise SnippetValidationError("Store id must be a non-empty string")
        self.store_id = store_id.strip()
        self.display_name = display_name or self.store_id
        # The containing store is authoritative for ownership
        owned = []
        for item in snippets or []:
            snippet = coerce_snippet(item)
            if snippet.store_id != self.store_id:
                snippet = snippet.copy(store_id=self.store_id)
            owned.append(snippet)
        self.snippets: Tuple[Snippet, ...] = tuple(owned)

    def find(self, snippet_id: str) -> Optional[Snippet]:
        """First snippet with the given id, by list position"""
        for snippet in self.snippets:
            if snippet.id == snippet_id:
                return snippet
        return None

    def snippet_ids(self) -> List[str]:
        return [snippet.id for snippet in self.snippets]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "store_id": self.store_id,
            "display_name": self.display_name,
            "snippets": [snippet.to_dict() for snippet in self.snippets],
        }

    def __len__(self) -> int:
        return len(self.snippets)

    def __repr__(self) -> str:
        return f"Store(store_id='{self.store_id}', snippets={len(self.snippets)})"


class StoreSnapshot(Mapping):
    """
    Immutable point-in-time mapping of store id to Store.

    The engine only ever reads a snapshot. Build a new one after the stores change;
    its fingerprint changes with it, so cached validation results keyed on the old
    snapshot are not reused.
    """

    def __init__(self, stores: Optional[Mapping[str, Store]] = None):
        self._stores = MappingProxyType(dict(stores or {}))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StoreSnapshot':
        """
        Build a snapshot from plain data.

        Each store value may be a list of snippets or a dict with ``snippets`` and
        an optional ``displayName`` / ``display_name``.

        Raises:
            SnippetValidationError: If the data has the wrong shape
        """
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise SnippetValidationError("Snapshot data must be a dictionary of stores")

        stores = {}
        for store_id, store_data in data.items():
            if isinstance(store_data, Store):
                stores[store_id] = store_data
            elif isinstance(store_data, (list, tuple)):
                stores[store_id] = Store(store_id, list(store_data))
            elif isinstance(store_data, dict):
                snippets = store_data.get("snippets") or []
                if not isinstance(snippets, (list, tuple)):
                    raise SnippetValidationError(f"Store '{store_id}' snippets must be a list")
                display_name = store_data.get("display_name") or store_data.get("displayName")
                stores[store_id] = Store(store_id, list(snippets), display_name)
            else:
                raise SnippetValidationError(f"Store '{store_id}' has invalid data type {type(store_data).__name__}")
        return cls(stores)

    def __getitem__(self, store_id: str) -> Store:
        return self._stores[store_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._stores)

    def __len__(self) -> int:
        return len(self._stores)

    def store_ids(self) -> Tuple[str, ...]:
        return tuple(sorted(self._stores))

    def find_snippet(self, store_id: str, snippet_id: str) -> Optional[Snippet]:
        store = self._stores.get(store_id)
        if store is None:
            return None
        return store.find(snippet_id)

    def iter_snippets(self) -> Iterator[Tuple[str, Snippet]]:
        """Yield (store_id, snippet) for every snippet in every store"""
        for store_id, store in self._stores.items():
            for snippet in store.snippets:
                yield store_id, snippet

    @cached_property
    def fingerprint(self) -> str:
        """Digest of store ids, snippet ids and dependency lists"""
        digest = hashlib.sha256()
        for store_id in self.store_ids():
            entries = [[snippet.id, snippet.dependencies] for snippet in self._stores[store_id].snippets]
            digest.update(json.dumps([store_id, entries], separators=(",", ":")).encode("utf-8"))
        return digest.hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {store_id: store.to_dict() for store_id, store in self._stores.items()}

    def __repr__(self) -> str:
        return f"StoreSnapshot(stores={list(self._stores)})"
