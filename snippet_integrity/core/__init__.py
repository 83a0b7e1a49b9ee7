"""
Core System Components for snippet-integrity

This package contains the consistency checks for snippets spread across stores:

- snippet: Snippet, Store and StoreSnapshot data structures
- dependency: Parsing and formatting of "storeId:trigger:snippetId" tokens
- resolver: Resolution of tokens against a snapshot
- cycles: Circular dependency detection and safe resolution order
- duplicates: Duplicate-id detection and conflict resolution within a store
- validator: The validation orchestrator (options, caching, hooks, statistics)
- reporting: User-facing formatting of validation issues
- workflow: Validation at creation, editing, storage and deletion time

Everything here works on in-memory snapshots; nothing reads or writes storage.
"""

from .snippet import (
    Snippet,
    Store,
    StoreSnapshot,
    SnippetError,
    SnippetValidationError,
    coerce_snippet,
    qualify,
)

from .errors import (
    ValidationErrorType,
    ValidationSeverity,
    DependencyFormatError,
    ValidationTimeoutError,
    Deadline,
)

from .dependency import (
    ParsedDependency,
    parse_dependency,
    format_dependency,
    is_valid_dependency,
    convert_to_unified_format,
)

from .resolver import (
    SnippetDependencyResolver,
    DependencyResolution,
    DependencyCheck,
    DependencyStats,
)

from .cycles import (
    CycleReport,
    detect_circular_dependencies,
    get_safe_resolution_order,
)

from .duplicates import (
    StoreDuplicateValidator,
    DuplicateGroup,
    DuplicateValidationReport,
    IdConflictResult,
    ConflictResolution,
)

from .validator import (
    DependencyValidator,
    ValidationOptions,
    ValidationContext,
    ValidationIssue,
    ValidationResult,
    StoreValidationResult,
    ValidationHook,
    ValidationStats,
    DEFAULT_VALIDATION_OPTIONS,
    FAST_VALIDATION_OPTIONS,
    THOROUGH_VALIDATION_OPTIONS,
)

from .reporting import (
    DefaultValidationErrorReporter,
    ValidationProgress,
)

from .workflow import (
    ValidationWorkflowManager,
    StorePermissions,
    SnippetCreationResult,
    SnippetEditingResult,
    StorageOperationResult,
    DuplicateResolutionResult,
)

__all__ = [
    # Core data structures
    "Snippet",
    "Store",
    "StoreSnapshot",
    "coerce_snippet",
    "qualify",

    # Exceptions
    "SnippetError",
    "SnippetValidationError",
    "DependencyFormatError",
    "ValidationTimeoutError",

    # Error taxonomy
    "ValidationErrorType",
    "ValidationSeverity",
    "Deadline",

    # Dependency tokens
    "ParsedDependency",
    "parse_dependency",
    "format_dependency",
    "is_valid_dependency",
    "convert_to_unified_format",

    # Resolution
    "SnippetDependencyResolver",
    "DependencyResolution",
    "DependencyCheck",
    "DependencyStats",

    # Cycles
    "CycleReport",
    "detect_circular_dependencies",
    "get_safe_resolution_order",

    # Duplicate ids
    "StoreDuplicateValidator",
    "DuplicateGroup",
    "DuplicateValidationReport",
    "IdConflictResult",
    "ConflictResolution",

    # Validation
    "DependencyValidator",
    "ValidationOptions",
    "ValidationContext",
    "ValidationIssue",
    "ValidationResult",
    "StoreValidationResult",
    "ValidationHook",
    "ValidationStats",
    "DEFAULT_VALIDATION_OPTIONS",
    "FAST_VALIDATION_OPTIONS",
    "THOROUGH_VALIDATION_OPTIONS",

    # Reporting and workflow
    "DefaultValidationErrorReporter",
    "ValidationProgress",
    "ValidationWorkflowManager",
    "StorePermissions",
    "SnippetCreationResult",
    "SnippetEditingResult",
    "StorageOperationResult",
    "DuplicateResolutionResult",
]
