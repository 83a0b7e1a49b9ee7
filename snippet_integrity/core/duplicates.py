"""
Store Duplicate Validator

Keeps snippet ids unique within a single store. The same id in two different
stores is allowed and never reported.

Key Features:
- Single-pass grouping of a store's snippets by id
- Free alternative ids suggested for every duplicate group
- Conflict resolution policies: keep-first, keep-last, keep-newest, keep-oldest,
  rename and merge
- Interactive "is this id free" checks that ignore the snippet's own slot

Resolution never edits the list it is given; it returns a new one.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from .snippet import Snippet, Store, StoreSnapshot, utc_now

logger = logging.getLogger(__name__)

MAX_NUMERIC_SUFFIX = 999

RESOLUTION_ACTIONS = ("keep-first", "keep-last", "keep-newest", "keep-oldest", "merge", "rename")
MERGE_STRATEGIES = ("content-priority", "metadata-priority", "user-choice")


@dataclass
class DuplicateGroup:
    """Snippets of one store sharing a single id"""
    id: str
    count: int
    indices: List[int]
    snippets: List[Snippet]
    suggested_ids: List[str] = field(default_factory=list)

    def to_dict(self, include_snippets: bool = True) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "count": self.count,
            "indices": list(self.indices),
            "suggested_ids": list(self.suggested_ids),
        }
        if include_snippets:
            result["snippets"] = [snippet.to_dict() for snippet in self.snippets]
        return result


@dataclass
class DuplicateValidationReport:
    """Duplicate-id findings for one store"""
    store_id: str
    store_name: str
    total_snippets: int
    valid_snippets: int
    duplicate_count: int
    duplicate_groups: List[DuplicateGroup]
    is_valid: bool
    message: str = ""

    def to_dict(self, include_snippets: bool = True) -> Dict[str, Any]:
        return {
            "store_id": self.store_id,
            "store_name": self.store_name,
            "total_snippets": self.total_snippets,
            "valid_snippets": self.valid_snippets,
            "duplicate_count": self.duplicate_count,
            "duplicate_groups": [group.to_dict(include_snippets) for group in self.duplicate_groups],
            "is_valid": self.is_valid,
            "message": self.message,
        }


@dataclass
class IdConflictResult:
    """Answer to "would this id clash with the store?" """
    is_valid: bool
    message: str
    duplicate_id: Optional[str] = None
    duplicate_indices: List[int] = field(default_factory=list)
    conflicting_snippets: List[Snippet] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "message": self.message,
            "duplicate_id": self.duplicate_id,
            "duplicate_indices": list(self.duplicate_indices),
            "conflicting_snippets": [snippet.to_dict() for snippet in self.conflicting_snippets],
        }


@dataclass
class ConflictResolution:
    """
    How to resolve duplicate groups.

    Attributes:
        action: One of RESOLUTION_ACTIONS
        merge_strategy: One of MERGE_STRATEGIES, used by the "merge" action
        choose: Decision callback for "user-choice" merges; receives the group's
            snippets and returns the one to keep
    """
    action: str
    merge_strategy: str = "content-priority"
    choose: Optional[Callable[[List[Snippet]], Optional[Snippet]]] = None

    def __post_init__(self):
        if self.action not in RESOLUTION_ACTIONS:
            raise ValueError(f"Unknown resolution action '{self.action}', expected one of {RESOLUTION_ACTIONS}")
        if self.merge_strategy not in MERGE_STRATEGIES:
            raise ValueError(f"Unknown merge strategy '{self.merge_strategy}', expected one of {MERGE_STRATEGIES}")


@dataclass
class DuplicateStats:
    total_stores_validated: int = 0
    total_snippets_validated: int = 0
    total_duplicates_found: int = 0
    total_conflicts_resolved: int = 0
    average_duplicates_per_store: float = 0.0
    processing_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


class StoreDuplicateValidator:
    """
    Validates and repairs duplicate snippet ids within single stores.

    Example:
        >>> validator = StoreDuplicateValidator()
        >>> snippets = [Snippet(id) for id in ["x", "y", "y", "y", "z"]]
        >>> report = validator.validate_store("s", "Store", snippets)
        >>> report.duplicate_count, report.valid_snippets
        (2, 3)
    """

    def __init__(self):
        self.validation_history: Dict[str, DuplicateValidationReport] = {}
        self.last_stats: Optional[DuplicateStats] = None
        self._id_counter = 0

    def validate_store(self, store_id: str, store_name: str, snippets: List[Snippet],
                       suggest_alternatives: bool = True, max_alternatives: int = 3) -> DuplicateValidationReport:
        """
        Find duplicate ids in a single store.

        Args:
            store_id: Store identifier
            store_name: Display name used in messages
            snippets: The store's snippets, in list order
            suggest_alternatives: Whether to compute free ids for each group
            max_alternatives: How many free ids to suggest per group

        Returns:
            DuplicateValidationReport; only the extra copies count as duplicates
        """
        id_groups: Dict[str, List[int]] = {}
        for index, snippet in enumerate(snippets):
            id_groups.setdefault(snippet.id, []).append(index)

        duplicate_groups = []
        duplicate_count = 0
        existing_ids = set(id_groups)

        for snippet_id, indices in id_groups.items():
            if len(indices) < 2:
                continue
            duplicate_count += len(indices) - 1

            group = DuplicateGroup(
                id=snippet_id,
                count=len(indices),
                indices=indices,
                snippets=[snippets[i] for i in indices],
            )
            if suggest_alternatives:
                group.suggested_ids = self.generate_alternative_ids(snippet_id, existing_ids, max_alternatives)
            duplicate_groups.append(group)

        is_valid = not duplicate_groups
        if is_valid:
            message = f'Store "{store_name}" has no duplicate IDs'
        else:
            message = (f'Store "{store_name}" has {duplicate_count} duplicate IDs '
                       f'in {len(duplicate_groups)} groups')
            logger.warning(message)

        report = DuplicateValidationReport(
            store_id=store_id,
            store_name=store_name,
            total_snippets=len(snippets),
            valid_snippets=len(snippets) - duplicate_count,
            duplicate_count=duplicate_count,
            duplicate_groups=duplicate_groups,
            is_valid=is_valid,
            message=message,
        )

        self.validation_history[store_id] = report
        return report

    def validate_multiple_stores(self, stores: Iterable[Store], **options) -> List[DuplicateValidationReport]:
        """Validate several stores independently and record aggregate statistics"""
        start = time.perf_counter()
        reports = [
            self.validate_store(store.store_id, store.display_name, list(store.snippets), **options)
            for store in stores
        ]

        total_duplicates = sum(report.duplicate_count for report in reports)
        self.last_stats = DuplicateStats(
            total_stores_validated=len(reports),
            total_snippets_validated=sum(report.total_snippets for report in reports),
            total_duplicates_found=total_duplicates,
            average_duplicates_per_store=total_duplicates / len(reports) if reports else 0.0,
            processing_time_ms=(time.perf_counter() - start) * 1000,
        )
        return reports

    def validate_snapshot(self, snapshot: StoreSnapshot, **options) -> Dict[str, DuplicateValidationReport]:
        """Validate every store of a snapshot, keyed by store id"""
        reports = self.validate_multiple_stores(snapshot.values(), **options)
        return {report.store_id: report for report in reports}

    def check_id_conflict(self, snippet_id: str, store_snippets: List[Snippet],
                          exclude_index: Optional[int] = None) -> IdConflictResult:
        """
        Check whether an id is already taken in a store.

        Args:
            snippet_id: Candidate id
            store_snippets: The store's snippets
            exclude_index: Slot of the snippet being edited, ignored in the check

        Returns:
            IdConflictResult; ``is_valid`` is True when the id is free
        """
        indices = [
            index for index, snippet in enumerate(store_snippets)
            if snippet.id == snippet_id and index != exclude_index
        ]

        if not indices:
            return IdConflictResult(is_valid=True, message=f'ID "{snippet_id}" is available')

        return IdConflictResult(
            is_valid=False,
            message=f'ID "{snippet_id}" conflicts with {len(indices)} existing snippets',
            duplicate_id=snippet_id,
            duplicate_indices=indices,
            conflicting_snippets=[store_snippets[i] for i in indices],
        )

    def generate_unique_id(self, base_id: str, store_snippets: List[Snippet],
                           id_generator: Optional[Callable[[], str]] = None,
                           reserved: Iterable[str] = ()) -> str:
        """
        Generate an id not used in the store and not in ``reserved``.

        Tries ``base_id`` itself, then ``base_id-1`` up to ``base_id-999``, then a
        timestamp-based suffix. A custom ``id_generator`` is called until it returns
        a free id.
        """
        taken: Set[str] = {snippet.id for snippet in store_snippets}
        taken.update(reserved)

        if id_generator is not None:
            candidate = id_generator()
            while candidate in taken:
                candidate = id_generator()
            return candidate

        if base_id not in taken:
            return base_id

        for counter in range(1, MAX_NUMERIC_SUFFIX + 1):
            candidate = f"{base_id}-{counter}"
            if candidate not in taken:
                return candidate

        return f"{base_id}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"

    def generate_alternative_ids(self, conflicting_id: str, existing_ids: Set[str],
                                 max_alternatives: int = 3) -> List[str]:
        """Suggest free ids for a duplicate group"""
        alternatives: List[str] = []

        for counter in range(1, MAX_NUMERIC_SUFFIX + 1):
            if len(alternatives) >= max_alternatives:
                break
            candidate = f"{conflicting_id}-{counter}"
            if candidate not in existing_ids:
                alternatives.append(candidate)

        while len(alternatives) < max_alternatives:
            candidate = f"{conflicting_id}-{int(time.time() * 1000)}-{self._id_counter}"
            self._id_counter += 1
            if candidate not in existing_ids and candidate not in alternatives:
                alternatives.append(candidate)

        return alternatives

    def resolve_conflicts(self, store_snippets: List[Snippet], resolution: ConflictResolution,
                          duplicate_groups: List[DuplicateGroup]) -> List[Snippet]:
        """
        Resolve duplicate groups according to a policy.

        Args:
            store_snippets: The store's snippets, as validated
            resolution: Policy to apply to every group
            duplicate_groups: Groups from validate_store for the same list

        Returns:
            New snippet list; the input list and its snippets are not modified
        """
        now = utc_now()
        dropped: Set[int] = set()
        replaced: Dict[int, Snippet] = {}
        assigned: Set[str] = set()
        conflicts_resolved = 0

        for group in duplicate_groups:
            indices = group.indices
            members = [store_snippets[i] for i in indices]
            action = resolution.action

            if action == "keep-first":
                dropped.update(indices[1:])
            elif action == "keep-last":
                dropped.update(indices[:-1])
            elif action == "keep-newest":
                keep = self._newest_position(members, now)
                dropped.update(index for position, index in enumerate(indices) if position != keep)
            elif action == "keep-oldest":
                keep = self._oldest_position(members, now)
                dropped.update(index for position, index in enumerate(indices) if position != keep)
            elif action == "rename":
                for index in indices[1:]:
                    new_id = self.generate_unique_id(group.id, store_snippets, reserved=assigned)
                    assigned.add(new_id)
                    replaced[index] = store_snippets[index].copy(id=new_id)
                    logger.info(f"Renamed duplicate '{group.id}' at position {index} to '{new_id}'")
            elif action == "merge":
                replaced[indices[0]] = self.merge_snippets(members, resolution.merge_strategy,
                                                           resolution.choose, now)
                dropped.update(indices[1:])

            conflicts_resolved += len(indices) - 1

        if self.last_stats is None:
            self.last_stats = DuplicateStats()
        self.last_stats.total_conflicts_resolved += conflicts_resolved

        return [
            replaced.get(index, snippet)
            for index, snippet in enumerate(store_snippets)
            if index not in dropped
        ]

    def merge_snippets(self, snippets: List[Snippet], strategy: str = "content-priority",
                       choose: Optional[Callable[[List[Snippet]], Optional[Snippet]]] = None,
                       now: Optional[datetime] = None) -> Snippet:
        """
        Collapse a duplicate group into a single snippet.

        Raises:
            ValueError: If the group is empty
        """
        if not snippets:
            raise ValueError("Cannot merge empty snippet list")
        if len(snippets) == 1:
            return snippets[0]

        now = now or utc_now()

        if strategy == "content-priority":
            longest = max(snippets, key=lambda snippet: len(snippet.content))
            return snippets[0].copy(content=longest.content, updated_at=now)

        if strategy == "metadata-priority":
            return snippets[self._newest_position(snippets, now)]

        chosen = choose(snippets) if choose is not None else None
        return chosen if chosen is not None else snippets[0]

    def get_validation_history(self, store_id: str) -> Optional[DuplicateValidationReport]:
        return self.validation_history.get(store_id)

    def clear_validation_history(self, store_id: Optional[str] = None) -> None:
        if store_id is None:
            self.validation_history.clear()
        else:
            self.validation_history.pop(store_id, None)

    # Ties keep the earliest position: max()/min() return the first extreme value

    @staticmethod
    def _newest_position(snippets: List[Snippet], now: datetime) -> int:
        stamps = [snippet.updated_at or now for snippet in snippets]
        return max(range(len(snippets)), key=lambda i: stamps[i])

    @staticmethod
    def _oldest_position(snippets: List[Snippet], now: datetime) -> int:
        stamps = [snippet.created_at or now for snippet in snippets]
        return min(range(len(snippets)), key=lambda i: stamps[i])
