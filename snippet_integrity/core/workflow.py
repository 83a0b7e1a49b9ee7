"""
Validation Workflow Integration

Wraps the validator around the points where snippets change: creation, editing,
storage operations and deletion. Also applies duplicate-id resolutions once the
target store is known to be writable.

Key Features:
- Id conflict check before creation and renaming edits
- Deletion safety: refuse to delete snippets other snippets depend on
- Named triggers run after successful validation ("snippet-creation",
  "snippet-editing", "storage-save", "storage-load", "storage-delete")
- Progress reporting through a pluggable error reporter
"""

import dataclasses
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

from .duplicates import ConflictResolution, StoreDuplicateValidator
from .errors import ValidationErrorType
from .reporting import DefaultValidationErrorReporter, ValidationProgress
from .snippet import Snippet, SnippetLike, SnippetValidationError, coerce_snippet
from .validator import (
    DependencyValidator,
    StoreValidationResult,
    ValidationContext,
    ValidationIssue,
    ValidationMetrics,
    ValidationResult,
    call_maybe_async,
)

logger = logging.getLogger(__name__)

STORAGE_OPERATIONS = ("save", "load", "delete")

ValidationTrigger = Callable[[Snippet, ValidationContext], Any]


class StorePermissions(Protocol):
    """Answers whether a store may be written to"""

    def can_write(self, store_id: str) -> bool:
        ...


class AllowAllPermissions:
    def can_write(self, store_id: str) -> bool:
        return True


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _failure(kind: ValidationErrorType, dependency: str, message: str, **extra) -> ValidationIssue:
    return ValidationIssue(kind=kind, dependency=dependency, message=message, **extra)


# =============================================================================
# Results
# =============================================================================

@dataclass
class SnippetCreationResult:
    success: bool
    snippet: Optional[Snippet]
    validation_result: Optional[ValidationResult]
    errors: List[ValidationIssue] = field(default_factory=list)
    processing_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "snippet": self.snippet.to_dict() if self.snippet else None,
            "validation_result": self.validation_result.to_dict() if self.validation_result else None,
            "errors": [error.to_dict() for error in self.errors],
            "processing_time": self.processing_time,
        }


@dataclass
class SnippetEditingResult:
    success: bool
    original_snippet: Optional[Snippet]
    edited_snippet: Optional[Snippet]
    validation_result: Optional[ValidationResult]
    errors: List[ValidationIssue] = field(default_factory=list)
    processing_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "original_snippet": self.original_snippet.to_dict() if self.original_snippet else None,
            "edited_snippet": self.edited_snippet.to_dict() if self.edited_snippet else None,
            "validation_result": self.validation_result.to_dict() if self.validation_result else None,
            "errors": [error.to_dict() for error in self.errors],
            "processing_time": self.processing_time,
        }


@dataclass
class StorageOperationResult:
    success: bool
    operation: str
    snippet: Optional[Snippet]
    validation_result: Optional[ValidationResult]
    errors: List[ValidationIssue] = field(default_factory=list)
    processing_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "operation": self.operation,
            "snippet": self.snippet.to_dict() if self.snippet else None,
            "validation_result": self.validation_result.to_dict() if self.validation_result else None,
            "errors": [error.to_dict() for error in self.errors],
            "processing_time": self.processing_time,
        }


@dataclass
class DuplicateResolutionResult:
    """Outcome of resolving a store's duplicate ids; the caller persists ``snippets``"""
    success: bool
    store_id: str
    snippets: List[Snippet] = field(default_factory=list)
    resolved_groups: int = 0
    errors: List[ValidationIssue] = field(default_factory=list)
    processing_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "store_id": self.store_id,
            "snippets": [snippet.to_dict() for snippet in self.snippets],
            "resolved_groups": self.resolved_groups,
            "errors": [error.to_dict() for error in self.errors],
            "processing_time": self.processing_time,
        }


# =============================================================================
# Manager
# =============================================================================

class ValidationWorkflowManager:
    """
    Runs validation at snippet lifecycle events.

    Example:
        >>> manager = ValidationWorkflowManager(DependencyValidator())
        >>> result = await manager.integrate_snippet_creation(snippet, context)
        >>> result.success
        True
    """

    def __init__(self, validator: DependencyValidator,
                 error_reporter: Optional[DefaultValidationErrorReporter] = None,
                 duplicate_validator: Optional[StoreDuplicateValidator] = None,
                 permissions: Optional[StorePermissions] = None):
        self.validator = validator
        self.error_reporter = error_reporter or DefaultValidationErrorReporter()
        self.duplicate_validator = duplicate_validator or StoreDuplicateValidator()
        self.permissions = permissions or AllowAllPermissions()
        self._validation_triggers: Dict[str, ValidationTrigger] = {}

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    def add_validation_trigger(self, event_name: str, trigger: ValidationTrigger) -> None:
        self._validation_triggers[event_name] = trigger

    def remove_validation_trigger(self, event_name: str) -> None:
        self._validation_triggers.pop(event_name, None)

    async def _trigger(self, event_name: str, snippet: Snippet, context: ValidationContext) -> None:
        trigger = self._validation_triggers.get(event_name)
        if trigger is not None:
            logger.debug(f"Running validation trigger '{event_name}' for snippet '{snippet.id}'")
            await call_maybe_async(trigger, snippet, context)

    # -------------------------------------------------------------------------
    # Lifecycle integration
    # -------------------------------------------------------------------------

    async def integrate_snippet_creation(self, snippet: SnippetLike,
                                         context: ValidationContext) -> SnippetCreationResult:
        """
        Validate a snippet about to be added to ``context.current_store``.

        The id must be free in the current store and the dependencies must validate.

        Args:
            snippet: New snippet
            context: Validation context; ``current_store`` is the target store

        Returns:
            SnippetCreationResult
        """
        start = time.perf_counter()
        snippet_id = getattr(snippet, "id", None) or (snippet.get("id", "") if isinstance(snippet, dict) else "")

        try:
            snippet = coerce_snippet(snippet, context.current_store or None)

            conflict = self._check_id_conflict(snippet.id, context)
            if conflict is not None:
                await self._report(f"Snippet ID '{snippet.id}' is already taken", 1, 3, snippet.id)
                return SnippetCreationResult(
                    success=False, snippet=None, validation_result=None,
                    errors=[conflict], processing_time=_elapsed_ms(start),
                )

            validation_result = await self.validator.validate_snippet(snippet, context)
            if not validation_result.is_valid:
                await self._report("Pre-creation validation failed", 1, 3, snippet.id)
                return SnippetCreationResult(
                    success=False, snippet=None, validation_result=validation_result,
                    errors=list(validation_result.errors), processing_time=_elapsed_ms(start),
                )

            await self._trigger("snippet-creation", snippet, context)

            post_validation = await self.validator.validate_snippet(snippet, context)
            await self._report("Creation validation completed", 3, 3, snippet.id)

            return SnippetCreationResult(
                success=True, snippet=snippet, validation_result=post_validation,
                processing_time=_elapsed_ms(start),
            )

        except SnippetValidationError as e:
            error = _failure(ValidationErrorType.INVALID_FORMAT, str(snippet_id), str(e))
        except Exception as e:
            logger.error(f"Snippet creation validation failed: {e}", exc_info=True)
            error = _failure(ValidationErrorType.VALIDATION_TIMEOUT, str(snippet_id),
                             f"Snippet creation validation failed: {e}")

        return SnippetCreationResult(
            success=False, snippet=None, validation_result=None,
            errors=[error], processing_time=_elapsed_ms(start),
        )

    async def integrate_snippet_editing(self, original: SnippetLike, edited: SnippetLike,
                                        context: ValidationContext) -> SnippetEditingResult:
        """
        Validate an edited snippet before it replaces the original.

        When the edit changes the id, the new id must be free in the current store,
        ignoring the original's own slot.

        Args:
            original: Snippet as currently stored
            edited: Replacement
            context: Validation context; ``current_store`` holds the original

        Returns:
            SnippetEditingResult
        """
        start = time.perf_counter()
        original_snippet = None
        edited_id = getattr(edited, "id", None) or (edited.get("id", "") if isinstance(edited, dict) else "")

        try:
            original_snippet = coerce_snippet(original, context.current_store or None)
            edited_snippet = coerce_snippet(edited, context.current_store or None)

            if edited_snippet.id != original_snippet.id:
                conflict = self._check_id_conflict(edited_snippet.id, context, original_snippet.id)
                if conflict is not None:
                    return SnippetEditingResult(
                        success=False, original_snippet=original_snippet, edited_snippet=None,
                        validation_result=None, errors=[conflict], processing_time=_elapsed_ms(start),
                    )

            validation_result = await self.validator.validate_snippet(edited_snippet, context)
            if not validation_result.is_valid:
                await self._report("Edit validation failed", 1, 3, edited_snippet.id)
                return SnippetEditingResult(
                    success=False, original_snippet=original_snippet, edited_snippet=None,
                    validation_result=validation_result, errors=list(validation_result.errors),
                    processing_time=_elapsed_ms(start),
                )

            await self._trigger("snippet-editing", edited_snippet, context)

            post_validation = await self.validator.validate_snippet(edited_snippet, context)
            await self._report("Edit validation completed", 3, 3, edited_snippet.id)

            return SnippetEditingResult(
                success=True, original_snippet=original_snippet, edited_snippet=edited_snippet,
                validation_result=post_validation, processing_time=_elapsed_ms(start),
            )

        except SnippetValidationError as e:
            error = _failure(ValidationErrorType.INVALID_FORMAT, str(edited_id), str(e))
        except Exception as e:
            logger.error(f"Snippet editing validation failed: {e}", exc_info=True)
            error = _failure(ValidationErrorType.VALIDATION_TIMEOUT, str(edited_id),
                             f"Snippet editing validation failed: {e}")

        return SnippetEditingResult(
            success=False, original_snippet=original_snippet, edited_snippet=None,
            validation_result=None, errors=[error], processing_time=_elapsed_ms(start),
        )

    async def integrate_storage_operation(self, operation: str, snippet: SnippetLike,
                                          context: ValidationContext) -> StorageOperationResult:
        """
        Validate a snippet around a storage operation.

        "save" and "load" validate the snippet's dependencies; "delete" runs the
        deletion safety check. The "storage-<operation>" trigger runs afterwards.

        Args:
            operation: One of "save", "load", "delete"
            snippet: Snippet involved in the operation
            context: Validation context

        Returns:
            StorageOperationResult
        """
        start = time.perf_counter()
        snippet_id = getattr(snippet, "id", None) or (snippet.get("id", "") if isinstance(snippet, dict) else "")

        if operation not in STORAGE_OPERATIONS:
            return StorageOperationResult(
                success=False, operation=operation, snippet=None, validation_result=None,
                errors=[_failure(ValidationErrorType.VALIDATION_TIMEOUT, str(snippet_id),
                                 f"Unknown storage operation: {operation}")],
                processing_time=_elapsed_ms(start),
            )

        try:
            snippet = coerce_snippet(snippet, context.current_store or None)

            if operation == "delete":
                validation_result = await self.validate_dependencies_before_deletion(snippet, context)
            else:
                validation_result = await self.validator.validate_snippet(snippet, context)

            await self._trigger(f"storage-{operation}", snippet, context)

            return StorageOperationResult(
                success=validation_result.is_valid,
                operation=operation,
                snippet=snippet if validation_result.is_valid else None,
                validation_result=validation_result,
                errors=list(validation_result.errors),
                processing_time=_elapsed_ms(start),
            )

        except SnippetValidationError as e:
            error = _failure(ValidationErrorType.INVALID_FORMAT, str(snippet_id), str(e))
        except Exception as e:
            logger.error(f"Storage operation '{operation}' validation failed: {e}", exc_info=True)
            error = _failure(ValidationErrorType.VALIDATION_TIMEOUT, str(snippet_id),
                             f"Storage operation validation failed: {e}")

        return StorageOperationResult(
            success=False, operation=operation, snippet=None, validation_result=None,
            errors=[error], processing_time=_elapsed_ms(start),
        )

    async def validate_dependencies_before_deletion(self, snippet: SnippetLike,
                                                    context: ValidationContext) -> ValidationResult:
        """
        Check that no other snippet depends on the one being deleted.

        Every store is scanned; a dependency counts when it resolves to the
        snippet's store and id.

        Returns:
            ValidationResult; invalid with one error listing the dependents' ids
        """
        start = time.perf_counter()
        snippet = coerce_snippet(snippet, context.current_store or None)
        store_id = snippet.store_id or context.current_store
        snapshot = context.snapshot

        dependents = self.validator.resolver.find_dependents(snapshot, store_id, snippet.id)

        result = ValidationResult(
            is_valid=True,
            snippet_id=snippet.id,
            store_id=store_id,
            session_id=context.session_id,
            performance_metrics=ValidationMetrics(
                stores_accessed=len(snapshot),
                max_validation_depth=1,
            ),
        )

        if dependents:
            dependent_ids = [dependent.id for _, dependent in dependents]
            logger.info(f"Deletion of '{store_id}:{snippet.id}' blocked by {len(dependents)} dependent snippets")
            result.add_error(ValidationIssue(
                kind=ValidationErrorType.MISSING_SNIPPET,
                dependency=snippet.id,
                message=f'Cannot delete snippet "{snippet.id}" - it is referenced by other snippets',
                affected_snippets=dependent_ids,
                suggestions=[
                    "Remove dependencies from other snippets first",
                    "Use a different snippet ID",
                    "Update dependent snippets to use alternative dependencies",
                ],
            ))

        result.performance_metrics.total_validation_time = _elapsed_ms(start)
        return result

    # -------------------------------------------------------------------------
    # Store-level operations
    # -------------------------------------------------------------------------

    async def validate_store_consistency(self, store_id: str, context: ValidationContext) -> StoreValidationResult:
        """
        Dependency validation of a whole store plus its duplicate-id check.

        Each duplicate group adds a DUPLICATE_ID store error, since dependencies on
        an ambiguous id always resolve to its first occurrence.
        """
        result = await self.validator.validate_store(store_id, context)
        store = context.snapshot.get(store_id)
        if store is None:
            return result

        report = self.duplicate_validator.validate_store(store_id, store.display_name, list(store.snippets))
        if report.is_valid:
            return result

        # The validator may hand back a cached result, so extend a copy
        result = dataclasses.replace(
            result,
            store_errors=list(result.store_errors),
            store_warnings=list(result.store_warnings),
        )
        for group in report.duplicate_groups:
            result.store_errors.append(_failure(
                ValidationErrorType.DUPLICATE_ID,
                group.id,
                f'ID "{group.id}" is used by {group.count} snippets in store "{store.display_name}"',
                affected_snippets=[group.id],
                suggestions=[f'Rename to "{suggested}"' for suggested in group.suggested_ids],
            ))
        result.is_valid = False
        return result

    async def resolve_store_duplicates(self, store_id: str, context: ValidationContext,
                                       resolution: ConflictResolution) -> DuplicateResolutionResult:
        """
        Resolve every duplicate-id group in a store.

        The store must be writable according to the permissions collaborator. The
        snapshot is not modified; the returned snippet list is what the caller
        should persist.

        Args:
            store_id: Store to resolve
            context: Validation context holding the snapshot
            resolution: Policy applied to every group

        Returns:
            DuplicateResolutionResult
        """
        start = time.perf_counter()
        store = context.snapshot.get(store_id)

        if store is None:
            return DuplicateResolutionResult(
                success=False, store_id=store_id,
                errors=[_failure(ValidationErrorType.MISSING_STORE, store_id,
                                 f'Store "{store_id}" does not exist')],
                processing_time=_elapsed_ms(start),
            )

        can_write = await call_maybe_async(self.permissions.can_write, store_id)
        if not can_write:
            logger.warning(f"Duplicate resolution refused: store '{store_id}' is read-only")
            return DuplicateResolutionResult(
                success=False, store_id=store_id,
                errors=[_failure(ValidationErrorType.PERMISSION_DENIED, store_id,
                                 f'Store "{store.display_name}" is not writable')],
                processing_time=_elapsed_ms(start),
            )

        snippets = list(store.snippets)
        report = self.duplicate_validator.validate_store(
            store_id, store.display_name, snippets, suggest_alternatives=False,
        )
        resolved = self.duplicate_validator.resolve_conflicts(snippets, resolution, report.duplicate_groups)

        logger.info(f"Resolved {len(report.duplicate_groups)} duplicate groups in store '{store_id}' "
                    f"with '{resolution.action}'")
        return DuplicateResolutionResult(
            success=True,
            store_id=store_id,
            snippets=resolved,
            resolved_groups=len(report.duplicate_groups),
            processing_time=_elapsed_ms(start),
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _check_id_conflict(self, snippet_id: str, context: ValidationContext,
                           replacing_id: Optional[str] = None) -> Optional[ValidationIssue]:
        store = context.snapshot.get(context.current_store)
        if store is None:
            return None

        snippets = list(store.snippets)
        exclude_index = None
        if replacing_id is not None:
            exclude_index = next(
                (index for index, existing in enumerate(snippets) if existing.id == replacing_id), None
            )

        conflict = self.duplicate_validator.check_id_conflict(snippet_id, snippets, exclude_index)
        if conflict.is_valid:
            return None

        alternatives = self.duplicate_validator.generate_alternative_ids(
            snippet_id, set(store.snippet_ids()),
        )
        return _failure(
            ValidationErrorType.DUPLICATE_ID,
            snippet_id,
            conflict.message,
            affected_snippets=[snippet_id],
            suggestions=[f'Use "{alternative}" instead' for alternative in alternatives],
        )

    async def _report(self, step: str, step_number: int, total_steps: int, snippet_id: str) -> None:
        await self.error_reporter.report_validation_progress(ValidationProgress(
            current_step=step,
            total_steps=total_steps,
            current_step_number=step_number,
            progress_percentage=round(step_number * 100 / total_steps),
            current_snippet=snippet_id,
        ))
