"""
User-facing formatting of validation issues and progress.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .errors import ValidationErrorType
from .validator import ValidationIssue

logger = logging.getLogger(__name__)

ERROR_LABELS = {
    ValidationErrorType.MISSING_STORE: "[store]",
    ValidationErrorType.MISSING_SNIPPET: "[snippet]",
    ValidationErrorType.CIRCULAR_DEPENDENCY: "[cycle]",
    ValidationErrorType.INVALID_FORMAT: "[format]",
    ValidationErrorType.DUPLICATE_ID: "[duplicate]",
    ValidationErrorType.PERMISSION_DENIED: "[permission]",
    ValidationErrorType.NETWORK_ERROR: "[network]",
    ValidationErrorType.VALIDATION_TIMEOUT: "[timeout]",
}


@dataclass
class ValidationProgress:
    current_step: str
    total_steps: int
    current_step_number: int
    progress_percentage: int
    estimated_time_remaining: Optional[float] = None
    current_snippet: Optional[str] = None


class DefaultValidationErrorReporter:
    """
    Turns structured issues into display strings.

    Subclass and override report_validation_progress to route progress to a UI.
    """

    def format_error_message(self, error: ValidationIssue) -> str:
        return f"{ERROR_LABELS.get(error.kind, '[error]')} {error.message}"

    def generate_error_summary(self, errors: Iterable[ValidationIssue]) -> str:
        """
        One-line summary grouped by error kind.

        Example:
            >>> reporter.generate_error_summary([])
            'All validations passed'
        """
        counts = Counter(error.kind for error in errors)
        if not counts:
            return "All validations passed"

        parts = []
        for kind, count in counts.items():
            label = kind.value.lower().replace("_", " ")
            plural = "s" if count > 1 else ""
            parts.append(f"{ERROR_LABELS.get(kind, '[error]')} {count} {label} error{plural}")

        return f"Validation failed: {', '.join(parts)}"

    def create_actionable_suggestions(self, errors: Iterable[ValidationIssue]) -> List[str]:
        """Unique suggestions across all errors, in first-seen order"""
        suggestions: List[str] = []
        for error in errors:
            for suggestion in error.suggestions:
                if suggestion not in suggestions:
                    suggestions.append(suggestion)
        return suggestions

    async def report_validation_progress(self, progress: ValidationProgress) -> None:
        snippet = f" - {progress.current_snippet}" if progress.current_snippet else ""
        logger.info(
            f"[{progress.current_step_number}/{progress.total_steps}] "
            f"{progress.current_step} ({progress.progress_percentage}%){snippet}"
        )
