"""
Dependency Resolver

Resolves dependency tokens against a StoreSnapshot. Resolution is a pure read:
the snapshot is never modified and the resolver keeps no per-snapshot state
beyond the statistics of its last batch.

Failure kinds:
- INVALID_FORMAT: the token does not parse
- MISSING_STORE: the token names a store absent from the snapshot
- MISSING_SNIPPET: the store exists but holds no snippet with that id
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .dependency import ParsedDependency, parse_dependency
from .errors import ValidationErrorType, ValidationSeverity
from .snippet import Snippet, StoreSnapshot, qualify, utc_now

logger = logging.getLogger(__name__)


@dataclass
class DependencyResolution:
    """Outcome of resolving one token"""
    dependency: ParsedDependency
    resolved: bool
    snippet: Optional[Snippet] = None
    failure_kind: Optional[ValidationErrorType] = None
    error: Optional[str] = None
    store_exists: Optional[bool] = None
    snippet_exists: Optional[bool] = None

    @property
    def target(self) -> Optional[str]:
        """Qualified id of the resolved snippet"""
        if not self.resolved:
            return None
        return qualify(self.dependency.store_id, self.dependency.snippet_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dependency": self.dependency.to_dict(),
            "resolved": self.resolved,
            "snippet": self.snippet.to_dict() if self.snippet else None,
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "error": self.error,
            "store_exists": self.store_exists,
            "snippet_exists": self.snippet_exists,
        }


@dataclass
class DependencyIssue:
    """A problem found while checking a list of tokens"""
    kind: ValidationErrorType
    severity: ValidationSeverity
    dependency: str
    message: str


@dataclass
class DependencyCheck:
    """Result of checking a list of tokens against a snapshot"""
    is_valid: bool = True
    valid: List[ParsedDependency] = field(default_factory=list)
    invalid: List[ParsedDependency] = field(default_factory=list)
    issues: List[DependencyIssue] = field(default_factory=list)

    @property
    def errors(self) -> List[DependencyIssue]:
        return [issue for issue in self.issues if issue.severity == ValidationSeverity.ERROR]

    @property
    def warnings(self) -> List[DependencyIssue]:
        return [issue for issue in self.issues if issue.severity != ValidationSeverity.ERROR]


@dataclass
class DependencyStats:
    total_dependencies: int = 0
    valid_dependencies: int = 0
    invalid_dependencies: int = 0
    resolved_dependencies: int = 0
    unresolved_dependencies: int = 0
    stores_referenced: int = 0
    processing_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


class SnippetDependencyResolver:
    """
    Resolves and checks cross-store dependency tokens.

    Example:
        >>> resolver = SnippetDependencyResolver()
        >>> snapshot = StoreSnapshot.from_dict({"store1": [{"id": "s1"}]})
        >>> resolver.resolve_dependency("store1:;t:s1", snapshot).resolved
        True
    """

    def __init__(self):
        self.last_stats: Optional[DependencyStats] = None

    def parse_dependency(self, token: Any) -> ParsedDependency:
        return parse_dependency(token)

    def extract_dependencies(self, snippet: Snippet) -> List[str]:
        """Dependency tokens of a snippet, verbatim and in order"""
        return list(snippet.dependencies)

    def resolve_dependency(self, token: Any, snapshot: StoreSnapshot) -> DependencyResolution:
        """
        Resolve a single token.

        Args:
            token: Dependency token
            snapshot: Stores to resolve against

        Returns:
            DependencyResolution; ``resolved`` is True only when the snippet was found
        """
        parsed = parse_dependency(token)
        if not parsed.is_valid:
            return DependencyResolution(
                dependency=parsed,
                resolved=False,
                failure_kind=ValidationErrorType.INVALID_FORMAT,
                error=parsed.error,
            )

        store = snapshot.get(parsed.store_id)
        if store is None:
            return DependencyResolution(
                dependency=parsed,
                resolved=False,
                failure_kind=ValidationErrorType.MISSING_STORE,
                error=f'Store "{parsed.store_id}" does not exist',
                store_exists=False,
            )

        snippet = store.find(parsed.snippet_id)
        if snippet is None:
            return DependencyResolution(
                dependency=parsed,
                resolved=False,
                failure_kind=ValidationErrorType.MISSING_SNIPPET,
                error=f'Snippet with ID "{parsed.snippet_id}" not found in store "{parsed.store_id}"',
                store_exists=True,
                snippet_exists=False,
            )

        return DependencyResolution(
            dependency=parsed,
            resolved=True,
            snippet=snippet,
            store_exists=True,
            snippet_exists=True,
        )

    def resolve_dependencies(self, tokens: Sequence[str], snapshot: StoreSnapshot) -> List[DependencyResolution]:
        """Resolve a batch of tokens and record statistics for it"""
        start = time.perf_counter()
        results = [self.resolve_dependency(token, snapshot) for token in tokens]

        self.last_stats = DependencyStats(
            total_dependencies=len(results),
            valid_dependencies=sum(1 for r in results if r.dependency.is_valid),
            invalid_dependencies=sum(1 for r in results if not r.dependency.is_valid),
            resolved_dependencies=sum(1 for r in results if r.resolved),
            unresolved_dependencies=sum(1 for r in results if not r.resolved),
            stores_referenced=len({r.dependency.store_id for r in results if r.dependency.is_valid}),
            processing_time_ms=(time.perf_counter() - start) * 1000,
        )
        return results

    def validate_dependencies(self, tokens: Sequence[str], snapshot: StoreSnapshot,
                              check_store: bool = True, check_snippet: bool = True,
                              generate_warnings: bool = True, strict: bool = False) -> DependencyCheck:
        """
        Check a list of tokens against the snapshot.

        Malformed tokens and (when ``check_store``) missing stores are errors.
        Missing snippets are warnings unless ``strict``; with ``generate_warnings``
        off, non-strict misses are not reported at all.

        Args:
            tokens: Dependency tokens to check
            snapshot: Stores to check against
            check_store: Whether to require the referenced store to exist
            check_snippet: Whether to look for the referenced snippet
            generate_warnings: Whether to report missing snippets as warnings
            strict: Whether a missing snippet is an error

        Returns:
            DependencyCheck; ``is_valid`` is False only when an error was found
        """
        check = DependencyCheck()

        for token in tokens:
            resolution = self.resolve_dependency(token, snapshot)
            parsed = resolution.dependency
            kind = resolution.failure_kind

            if kind == ValidationErrorType.INVALID_FORMAT:
                check.invalid.append(parsed)
                check.issues.append(DependencyIssue(kind, ValidationSeverity.ERROR, parsed.original, resolution.error))
                continue

            if kind == ValidationErrorType.MISSING_STORE:
                if check_store:
                    check.invalid.append(parsed)
                    check.issues.append(DependencyIssue(kind, ValidationSeverity.ERROR, parsed.original, resolution.error))
                    continue
            elif kind == ValidationErrorType.MISSING_SNIPPET and check_snippet:
                if strict:
                    check.invalid.append(parsed)
                    check.issues.append(DependencyIssue(kind, ValidationSeverity.ERROR, parsed.original, resolution.error))
                    continue
                if generate_warnings:
                    check.issues.append(DependencyIssue(kind, ValidationSeverity.WARNING, parsed.original, resolution.error))

            check.valid.append(parsed)

        check.is_valid = not check.invalid
        return check

    def find_dependents(self, snapshot: StoreSnapshot, store_id: str, snippet_id: str) -> List[Tuple[str, Snippet]]:
        """
        Find every other snippet whose dependencies resolve to the given snippet.

        Returns:
            List of (store_id, snippet) pairs, in snapshot order
        """
        dependents = []
        for owner_store, snippet in snapshot.iter_snippets():
            if owner_store == store_id and snippet.id == snippet_id:
                continue
            for token in self.extract_dependencies(snippet):
                parsed = parse_dependency(token)
                if parsed.is_valid and parsed.store_id == store_id and parsed.snippet_id == snippet_id:
                    dependents.append((owner_store, snippet))
                    break
        return dependents

    def update_snippet_dependencies(self, snippet: Snippet, tokens: Sequence[str]) -> Snippet:
        """Copy of the snippet with new dependencies and a refreshed update time"""
        return snippet.copy(dependencies=list(tokens), updated_at=utc_now())
