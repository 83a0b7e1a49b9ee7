"""
Dependency Validation Orchestrator

High-level validation of snippet dependencies across all stores of a snapshot.
Builds on SnippetDependencyResolver and the cycle detector.

Key Features:
- Format, store-existence and snippet-existence checks per dependency token
- Circular dependency detection from the validated snippet
- Deep validation: recursive checks of each resolved dependency, depth-capped
- Advisory suggestions per error kind
- Result caching keyed on snippet, options and snapshot identity
- Ordered pre/post validation hooks
- Cooperative timeout checked during traversal

Policy: malformed tokens, missing stores and cycles are errors. A missing snippet
in an existing store is only a warning by default, since targets are routinely
created after the snippets that reference them; set ``strict_snippet_existence``
to make it an error.

Validation never raises. Unexpected exceptions come back as a failed result with
a VALIDATION_TIMEOUT error carrying the original message.
"""

import dataclasses
import inspect
import logging
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

from .cycles import _canonical, detect_circular_dependencies
from .errors import Deadline, ValidationErrorType, ValidationSeverity, ValidationTimeoutError
from .resolver import SnippetDependencyResolver
from .snippet import Snippet, SnippetLike, StoreSnapshot, coerce_snippet, utc_now

logger = logging.getLogger(__name__)


# =============================================================================
# Options & Context
# =============================================================================

@dataclass(frozen=True)
class ValidationOptions:
    """
    Immutable validation settings.

    Attributes:
        validate_store_existence: Report tokens naming unknown stores
        validate_snippet_existence: Look up the referenced snippet
        detect_circular_dependencies: Run cycle detection
        max_validation_depth: Cap for deep validation and cycle search depth
        enable_caching: Reuse results for identical inputs
        generate_suggestions: Attach advisory suggestions to issues
        generate_warnings: Report non-fatal issues such as missing snippets
        validation_timeout: Time limit in milliseconds (0 disables it)
        deep_validation: Recurse into resolved dependencies
        strict_snippet_existence: Treat missing snippets as errors
    """
    validate_store_existence: bool = True
    validate_snippet_existence: bool = True
    detect_circular_dependencies: bool = True
    max_validation_depth: int = 50
    enable_caching: bool = True
    generate_suggestions: bool = True
    generate_warnings: bool = True
    validation_timeout: int = 30000
    deep_validation: bool = True
    strict_snippet_existence: bool = False

    def __post_init__(self):
        if not isinstance(self.max_validation_depth, int) or self.max_validation_depth < 0:
            raise ValueError("max_validation_depth must be a non-negative integer")
        if self.validation_timeout < 0:
            raise ValueError("validation_timeout must not be negative")

    @classmethod
    def preset(cls, name: str) -> 'ValidationOptions':
        """Named preset: "fast", "default" or "thorough" """
        try:
            return VALIDATION_PRESETS[name]
        except KeyError:
            raise ValueError(f"Unknown validation profile '{name}', expected one of {sorted(VALIDATION_PRESETS)}")

    def replace(self, **changes) -> 'ValidationOptions':
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


DEFAULT_VALIDATION_OPTIONS = ValidationOptions()

FAST_VALIDATION_OPTIONS = ValidationOptions(
    validate_store_existence=True,
    validate_snippet_existence=False,
    detect_circular_dependencies=False,
    max_validation_depth=10,
    enable_caching=True,
    generate_suggestions=False,
    generate_warnings=False,
    validation_timeout=5000,
    deep_validation=False,
)

THOROUGH_VALIDATION_OPTIONS = ValidationOptions(
    validate_store_existence=True,
    validate_snippet_existence=True,
    detect_circular_dependencies=True,
    max_validation_depth=100,
    enable_caching=True,
    generate_suggestions=True,
    generate_warnings=True,
    validation_timeout=60000,
    deep_validation=True,
)

VALIDATION_PRESETS = {
    "fast": FAST_VALIDATION_OPTIONS,
    "default": DEFAULT_VALIDATION_OPTIONS,
    "thorough": THOROUGH_VALIDATION_OPTIONS,
}


@dataclass
class ValidationContext:
    """
    Everything a validation call needs besides the snippet itself.

    Attributes:
        snapshot: Stores to resolve against
        current_store: Store assumed for snippets that do not name their own
        options: Validation settings
        user_id: Optional caller identity, passed through to hooks
        session_id: Optional tracking id; generated when missing
        current_depth: Recursion depth of deep validation
    """
    snapshot: StoreSnapshot
    current_store: str = ""
    options: ValidationOptions = DEFAULT_VALIDATION_OPTIONS
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    current_depth: int = 0

    def __post_init__(self):
        if not isinstance(self.snapshot, StoreSnapshot):
            self.snapshot = StoreSnapshot.from_dict(self.snapshot)
        if not self.session_id:
            self.session_id = f"validation-{uuid.uuid4().hex[:12]}"

    def descend(self) -> 'ValidationContext':
        return dataclasses.replace(self, current_depth=self.current_depth + 1)

    def for_store(self, store_id: str) -> 'ValidationContext':
        return dataclasses.replace(self, current_store=store_id, current_depth=0)


# =============================================================================
# Results
# =============================================================================

@dataclass
class ValidationIssue:
    """A validation error or warning"""
    kind: ValidationErrorType
    dependency: str
    message: str
    severity: ValidationSeverity = ValidationSeverity.ERROR
    suggestions: List[str] = field(default_factory=list)
    affected_snippets: List[str] = field(default_factory=list)
    resolution_path: List[str] = field(default_factory=list)

    @property
    def is_error(self) -> bool:
        return self.severity == ValidationSeverity.ERROR

    def identity(self) -> Tuple:
        """Key used to drop repeated reports of the same problem"""
        if self.kind == ValidationErrorType.CIRCULAR_DEPENDENCY and self.resolution_path:
            return (self.kind, _canonical(self.resolution_path))
        return (self.kind, self.severity, self.dependency, self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "dependency": self.dependency,
            "message": self.message,
            "severity": self.severity.value,
            "suggestions": list(self.suggestions),
            "affected_snippets": list(self.affected_snippets),
            "resolution_path": list(self.resolution_path),
        }


@dataclass
class CircularDependencyInfo:
    cycle: List[str]
    affected_snippets: List[str]
    break_suggestions: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle": list(self.cycle),
            "affected_snippets": list(self.affected_snippets),
            "break_suggestions": list(self.break_suggestions),
        }


@dataclass
class ValidationMetrics:
    total_validation_time: float = 0.0
    dependencies_validated: int = 0
    stores_accessed: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    circular_dependency_checks: int = 0
    max_validation_depth: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass
class ValidationResult:
    """
    Result container for one snippet validation.

    ``errors`` are blocking, ``warnings`` advisory.
    """
    is_valid: bool
    snippet_id: str = ""
    store_id: str = ""
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    circular_dependencies: List[CircularDependencyInfo] = field(default_factory=list)
    validated_dependencies: List[str] = field(default_factory=list)
    performance_metrics: ValidationMetrics = field(default_factory=ValidationMetrics)
    session_id: Optional[str] = None
    aborted_by: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)

    def add_error(self, issue: ValidationIssue) -> None:
        """Add an error and mark the result as invalid"""
        self.errors.append(issue)
        self.is_valid = False

    def add_warning(self, issue: ValidationIssue) -> None:
        self.warnings.append(issue)

    def merge(self, other: 'ValidationResult') -> None:
        """Merge issues from another result, skipping ones already reported"""
        known = {issue.identity() for issue in self.errors + self.warnings}
        for issue in other.errors:
            if issue.identity() not in known:
                known.add(issue.identity())
                self.add_error(issue)
        for issue in other.warnings:
            if issue.identity() not in known:
                known.add(issue.identity())
                self.add_warning(issue)

        cycles = {_canonical(info.cycle) for info in self.circular_dependencies}
        for info in other.circular_dependencies:
            if _canonical(info.cycle) not in cycles:
                cycles.add(_canonical(info.cycle))
                self.circular_dependencies.append(info)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "snippet_id": self.snippet_id,
            "store_id": self.store_id,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
            "circular_dependencies": [info.to_dict() for info in self.circular_dependencies],
            "validated_dependencies": list(self.validated_dependencies),
            "performance_metrics": self.performance_metrics.to_dict(),
            "session_id": self.session_id,
            "aborted_by": self.aborted_by,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class StoreValidationResult:
    """Aggregated validation of every snippet in one store"""
    store_id: str
    is_valid: bool
    snippet_results: Dict[str, ValidationResult] = field(default_factory=dict)
    store_errors: List[ValidationIssue] = field(default_factory=list)
    store_warnings: List[ValidationIssue] = field(default_factory=list)
    performance_metrics: ValidationMetrics = field(default_factory=ValidationMetrics)
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "store_id": self.store_id,
            "is_valid": self.is_valid,
            "snippet_results": {key: result.to_dict() for key, result in self.snippet_results.items()},
            "store_errors": [issue.to_dict() for issue in self.store_errors],
            "store_warnings": [issue.to_dict() for issue in self.store_warnings],
            "performance_metrics": self.performance_metrics.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }


# =============================================================================
# Hooks & Statistics
# =============================================================================

HookResult = Union[Any, Awaitable[Any]]


@dataclass
class ValidationHook:
    """
    Extension point around validation.

    Hooks run in ascending ``priority`` order. Callables may be plain functions or
    coroutines. A ``pre_validation`` hook returning False stops validation; any
    other return value lets it continue.
    """
    name: str
    priority: int = 100
    pre_validation: Optional[Callable[[Snippet, ValidationContext], HookResult]] = None
    post_validation: Optional[Callable[[ValidationResult, ValidationContext], HookResult]] = None
    on_error: Optional[Callable[[ValidationIssue, ValidationContext], HookResult]] = None


async def call_maybe_async(func: Callable, *args) -> Any:
    value = func(*args)
    if inspect.isawaitable(value):
        value = await value
    return value


@dataclass
class ValidationStats:
    total_validations: int = 0
    successful_validations: int = 0
    failed_validations: int = 0
    average_validation_time: float = 0.0
    cache_hits: int = 0
    cache_misses: int = 0
    most_common_errors: Counter = field(default_factory=Counter)
    validations_by_store: Counter = field(default_factory=Counter)

    @property
    def cache_hit_rate(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        return self.cache_hits / lookups if lookups else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_validations": self.total_validations,
            "successful_validations": self.successful_validations,
            "failed_validations": self.failed_validations,
            "average_validation_time": self.average_validation_time,
            "cache_hit_rate": self.cache_hit_rate,
            "most_common_errors": {kind.value: count for kind, count in self.most_common_errors.most_common()},
            "validations_by_store": dict(self.validations_by_store),
        }


SUGGESTIONS: Dict[ValidationErrorType, List[str]] = {
    ValidationErrorType.MISSING_STORE: [
        'Check if the store referenced by "{dependency}" exists',
        "Verify store configuration",
        "Check network connectivity if using remote stores",
    ],
    ValidationErrorType.MISSING_SNIPPET: [
        'Create the snippet referenced by "{dependency}"',
        "Check if snippet was deleted or moved",
        "Verify snippet ID spelling",
    ],
    ValidationErrorType.CIRCULAR_DEPENDENCY: [
        "Break the circular dependency chain",
        "Consider refactoring snippet dependencies",
        "Use conditional dependencies if appropriate",
    ],
    ValidationErrorType.INVALID_FORMAT: [
        'Use format: "storeId:trigger:snippetId"',
        "Check for typos in dependency string",
        "Verify dependency format documentation",
    ],
    ValidationErrorType.DUPLICATE_ID: [
        "Choose a different snippet ID",
        "Resolve duplicate IDs in the store first",
    ],
}

DEFAULT_SUGGESTIONS = [
    "Check dependency configuration",
    "Verify all referenced snippets exist",
]


def suggestions_for(issue: ValidationIssue) -> List[str]:
    templates = SUGGESTIONS.get(issue.kind, DEFAULT_SUGGESTIONS)
    return [template.format(dependency=issue.dependency) for template in templates]


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


# =============================================================================
# Validator
# =============================================================================

CacheKey = Tuple


class DependencyValidator:
    """
    Validates snippet dependencies against a snapshot of all stores.

    One instance owns its caches, hooks and statistics; create one per
    application (or per test) and pass it where it is needed.

    Example:
        >>> validator = DependencyValidator()
        >>> context = ValidationContext(snapshot, current_store="personal")
        >>> result = await validator.validate_snippet(snippet, context)
    """

    def __init__(self, resolver: Optional[SnippetDependencyResolver] = None):
        self.resolver = resolver or SnippetDependencyResolver()
        self._validation_cache: Dict[CacheKey, ValidationResult] = {}
        self._store_validation_cache: Dict[CacheKey, StoreValidationResult] = {}
        self._hooks: List[ValidationHook] = []
        self._stats = ValidationStats()

    # -------------------------------------------------------------------------
    # Public validation API
    # -------------------------------------------------------------------------

    async def validate_snippet(self, snippet: SnippetLike, context: ValidationContext) -> ValidationResult:
        """
        Validate one snippet's dependencies.

        Args:
            snippet: Snippet (or its dictionary form) to validate
            context: Snapshot, current store and options

        Returns:
            ValidationResult; never raises
        """
        start = time.perf_counter()
        if isinstance(snippet, Snippet):
            snippet_id = snippet.id
        elif isinstance(snippet, dict):
            snippet_id = str(snippet.get("id", ""))
        else:
            snippet_id = ""

        try:
            deadline = Deadline(context.options.validation_timeout)
            return await self._validate(snippet, context, deadline, set())
        except ValidationTimeoutError as e:
            logger.warning(f"Validation of snippet '{snippet_id}' timed out: {e}")
            message = str(e)
        except Exception as e:
            logger.error(f"Validation of snippet '{snippet_id}' failed: {e}", exc_info=True)
            message = f'Validation failed for snippet "{snippet_id}": {e}'

        result = ValidationResult(
            is_valid=False,
            snippet_id=snippet_id,
            store_id=context.current_store,
            session_id=context.session_id,
        )
        result.add_error(ValidationIssue(
            kind=ValidationErrorType.VALIDATION_TIMEOUT,
            dependency=snippet_id,
            message=message,
            affected_snippets=[snippet_id] if snippet_id else [],
        ))
        result.performance_metrics.total_validation_time = _elapsed_ms(start)
        self._update_stats(result, start, context.current_store)
        return result

    async def validate_store(self, store_id: str, context: ValidationContext) -> StoreValidationResult:
        """
        Validate every snippet in a store.

        Args:
            store_id: Store to validate
            context: Snapshot and options; ``current_store`` is overridden

        Returns:
            StoreValidationResult with per-snippet results and deduplicated
            store-wide issues
        """
        start = time.perf_counter()
        snapshot = context.snapshot
        options = context.options

        cache_key = (store_id, options, snapshot.store_ids(), snapshot.fingerprint)
        if options.enable_caching and cache_key in self._store_validation_cache:
            logger.debug(f"Store validation cache hit for '{store_id}'")
            return self._store_validation_cache[cache_key]

        store = snapshot.get(store_id)
        if store is None:
            return StoreValidationResult(
                store_id=store_id,
                is_valid=False,
                store_errors=[ValidationIssue(
                    kind=ValidationErrorType.MISSING_STORE,
                    dependency=store_id,
                    message=f'Store "{store_id}" does not exist',
                )],
                performance_metrics=ValidationMetrics(
                    total_validation_time=_elapsed_ms(start),
                    stores_accessed=1,
                ),
            )

        result = StoreValidationResult(store_id=store_id, is_valid=True)
        known = set()
        metrics = result.performance_metrics
        store_context = context.for_store(store_id)

        for snippet in store.snippets:
            # Cached results carry the metrics of the run that produced them
            cached = options.enable_caching and self._cache_key(snippet, store_context) in self._validation_cache
            snippet_result = await self.validate_snippet(snippet, store_context)
            result.snippet_results.setdefault(snippet.id, snippet_result)

            metrics.dependencies_validated += len(snippet_result.validated_dependencies)
            if cached:
                metrics.cache_hits += 1
            else:
                metrics.cache_misses += snippet_result.performance_metrics.cache_misses
            metrics.circular_dependency_checks += snippet_result.performance_metrics.circular_dependency_checks
            metrics.max_validation_depth = max(metrics.max_validation_depth,
                                               snippet_result.performance_metrics.max_validation_depth)

            for issue in snippet_result.errors:
                if issue.identity() not in known:
                    known.add(issue.identity())
                    result.store_errors.append(issue)
            for issue in snippet_result.warnings:
                if issue.identity() not in known:
                    known.add(issue.identity())
                    result.store_warnings.append(issue)

        result.is_valid = not result.store_errors
        metrics.stores_accessed = 1
        metrics.total_validation_time = _elapsed_ms(start)

        if options.enable_caching:
            self._store_validation_cache[cache_key] = result

        return result

    # -------------------------------------------------------------------------
    # Hooks, statistics & cache
    # -------------------------------------------------------------------------

    def add_validation_hook(self, hook: ValidationHook) -> None:
        self._hooks.append(hook)
        self._hooks.sort(key=lambda h: h.priority)

    def remove_validation_hook(self, name: str) -> None:
        self._hooks = [hook for hook in self._hooks if hook.name != name]

    @property
    def hooks(self) -> List[ValidationHook]:
        return list(self._hooks)

    def get_validation_stats(self) -> ValidationStats:
        return dataclasses.replace(
            self._stats,
            most_common_errors=Counter(self._stats.most_common_errors),
            validations_by_store=Counter(self._stats.validations_by_store),
        )

    def clear_cache(self) -> None:
        self._validation_cache.clear()
        self._store_validation_cache.clear()

    def get_cache_stats(self) -> Dict[str, int]:
        return {
            "validation_cache_size": len(self._validation_cache),
            "store_validation_cache_size": len(self._store_validation_cache),
        }

    def reset(self) -> None:
        """Clear caches and statistics"""
        self.clear_cache()
        self._stats = ValidationStats()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _cache_key(self, snippet: Snippet, context: ValidationContext) -> CacheKey:
        snapshot = context.snapshot
        return (
            snippet.store_id or context.current_store,
            snippet.id,
            tuple(snippet.dependencies),
            context.options,
            snapshot.store_ids(),
            snapshot.fingerprint,
            context.current_depth,
        )

    async def _validate(self, raw_snippet: SnippetLike, context: ValidationContext,
                        deadline: Deadline, seen: Set[str],
                        root: Optional[Snippet] = None) -> ValidationResult:
        start = time.perf_counter()
        options = context.options
        snippet = coerce_snippet(raw_snippet, context.current_store or None)
        # Nested levels see the snippet being validated, not its snapshot copy
        if root is None:
            root = snippet
        store_id = snippet.store_id or context.current_store
        seen.add(snippet.qualified_id(context.current_store))

        # Nested results depend on what the enclosing traversal already visited
        use_cache = options.enable_caching and context.current_depth == 0
        cache_key = self._cache_key(snippet, context)
        if use_cache:
            cached = self._validation_cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Validation cache hit for snippet '{snippet.id}'")
                self._stats.cache_hits += 1
                return cached
            self._stats.cache_misses += 1

        result = ValidationResult(
            is_valid=True,
            snippet_id=snippet.id,
            store_id=store_id,
            session_id=context.session_id,
        )
        metrics = result.performance_metrics
        metrics.cache_misses = 1 if use_cache else 0
        metrics.max_validation_depth = context.current_depth

        for hook in self._hooks:
            if hook.pre_validation is None:
                continue
            should_continue = await call_maybe_async(hook.pre_validation, snippet, context)
            if should_continue is False:
                logger.info(f"Validation of snippet '{snippet.id}' stopped by hook '{hook.name}'")
                result.is_valid = False
                result.aborted_by = hook.name
                metrics.total_validation_time = _elapsed_ms(start)
                self._update_stats(result, start, store_id)
                return result

        dependencies = self.resolver.extract_dependencies(snippet)

        if dependencies:
            self._check_dependencies(result, dependencies, context)

            if options.detect_circular_dependencies:
                self._check_cycles(result, snippet, context, deadline, root)

            if options.deep_validation and context.current_depth < options.max_validation_depth:
                await self._validate_deep(result, context, deadline, seen, root)

            if options.generate_suggestions:
                for issue in result.errors + result.warnings:
                    issue.suggestions = suggestions_for(issue)

        result.is_valid = not result.errors
        metrics.total_validation_time = _elapsed_ms(start)

        for hook in self._hooks:
            if hook.post_validation is not None:
                await call_maybe_async(hook.post_validation, result, context)
        for hook in self._hooks:
            if hook.on_error is not None:
                for issue in result.errors:
                    await call_maybe_async(hook.on_error, issue, context)

        if use_cache:
            self._validation_cache[cache_key] = result
        self._update_stats(result, start, store_id)
        return result

    def _check_dependencies(self, result: ValidationResult, dependencies: List[str],
                            context: ValidationContext) -> None:
        options = context.options
        check = self.resolver.validate_dependencies(
            dependencies,
            context.snapshot,
            check_store=options.validate_store_existence,
            check_snippet=options.validate_snippet_existence,
            generate_warnings=options.generate_warnings,
            strict=options.strict_snippet_existence,
        )

        for issue in check.issues:
            converted = ValidationIssue(
                kind=issue.kind,
                dependency=issue.dependency,
                message=issue.message,
                severity=issue.severity,
                affected_snippets=[result.snippet_id],
            )
            if issue.severity == ValidationSeverity.ERROR:
                result.add_error(converted)
            else:
                result.add_warning(converted)

        result.validated_dependencies = [parsed.original for parsed in check.valid]
        result.performance_metrics.dependencies_validated = len(check.valid)
        result.performance_metrics.stores_accessed = len({parsed.store_id for parsed in check.valid})

    def _check_cycles(self, result: ValidationResult, snippet: Snippet,
                      context: ValidationContext, deadline: Deadline, root: Snippet) -> None:
        report = detect_circular_dependencies(
            [snippet] if root is snippet else [snippet, root],
            context.snapshot,
            max_depth=context.options.max_validation_depth,
            default_store_id=context.current_store,
            deadline=deadline,
        )
        result.performance_metrics.circular_dependency_checks = report.checks

        for cycle in report.cycles:
            path = " -> ".join(cycle)
            result.add_error(ValidationIssue(
                kind=ValidationErrorType.CIRCULAR_DEPENDENCY,
                dependency=path,
                message=f"Circular dependency detected: {path}",
                affected_snippets=list(dict.fromkeys(cycle)),
                resolution_path=list(cycle),
            ))
            result.circular_dependencies.append(CircularDependencyInfo(
                cycle=list(cycle),
                affected_snippets=list(dict.fromkeys(cycle)),
                break_suggestions=[f"Break dependency between {cycle[0]} and {cycle[1]}"],
            ))

    async def _validate_deep(self, result: ValidationResult, context: ValidationContext,
                             deadline: Deadline, seen: Set[str], root: Snippet) -> None:
        deeper = context.descend()

        for token in list(result.validated_dependencies):
            resolution = self.resolver.resolve_dependency(token, context.snapshot)
            if not resolution.resolved or resolution.target in seen:
                continue

            deadline.check()
            deep_result = await self._validate(resolution.snippet, deeper, deadline, seen, root)
            result.merge(deep_result)
            result.performance_metrics.max_validation_depth = max(
                result.performance_metrics.max_validation_depth,
                deep_result.performance_metrics.max_validation_depth,
            )

    def _update_stats(self, result: ValidationResult, start: float, store_id: str) -> None:
        stats = self._stats
        stats.total_validations += 1
        if result.is_valid:
            stats.successful_validations += 1
        else:
            stats.failed_validations += 1

        elapsed = max(_elapsed_ms(start), 1.0)
        stats.average_validation_time = (
            stats.average_validation_time * (stats.total_validations - 1) + elapsed
        ) / stats.total_validations

        for issue in result.errors:
            stats.most_common_errors[issue.kind] += 1
        if store_id:
            stats.validations_by_store[store_id] += 1
