"""
snippet-integrity

Consistency checks for text snippets that reference each other across
independently owned stores.

This package includes:
- Dependency token parsing and cross-store resolution
- Circular dependency detection
- Duplicate-id detection and conflict resolution
- A validation orchestrator with presets, caching and hooks
- Workflow checks for creation, editing, storage and deletion
- An aiohttp JSON API
"""

# =============================================================================
# Standard Library Imports
# =============================================================================

import logging

# =============================================================================
# Package Metadata
# =============================================================================

__version__ = "0.1.0"
__description__ = "Cross-store dependency and duplicate-id validation for text snippets"

# =============================================================================
# Local/Project Imports
# =============================================================================

from .core import (
    Snippet,
    Store,
    StoreSnapshot,
    SnippetError,
    SnippetValidationError,
    DependencyFormatError,
    ValidationErrorType,
    ValidationSeverity,
    parse_dependency,
    format_dependency,
    SnippetDependencyResolver,
    detect_circular_dependencies,
    StoreDuplicateValidator,
    ConflictResolution,
    DependencyValidator,
    ValidationOptions,
    ValidationContext,
    ValidationHook,
    ValidationWorkflowManager,
    DefaultValidationErrorReporter,
)

from .config import ConfigError, IntegrityConfig, load_config

# =============================================================================
# Module-Level Variables
# =============================================================================

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

__all__ = [
    "Snippet",
    "Store",
    "StoreSnapshot",
    "SnippetError",
    "SnippetValidationError",
    "DependencyFormatError",
    "ConfigError",
    "ValidationErrorType",
    "ValidationSeverity",
    "parse_dependency",
    "format_dependency",
    "SnippetDependencyResolver",
    "detect_circular_dependencies",
    "StoreDuplicateValidator",
    "ConflictResolution",
    "DependencyValidator",
    "ValidationOptions",
    "ValidationContext",
    "ValidationHook",
    "ValidationWorkflowManager",
    "DefaultValidationErrorReporter",
    "IntegrityConfig",
    "load_config",
]
