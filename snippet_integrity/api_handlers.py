"""
API Request Handlers for Snippet Integrity

This module contains the HTTP request handlers for the JSON API. Every request
that needs store data carries its own snapshot; the handlers keep no store state.
Validator, duplicate validator and workflow manager come from the application.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple

from aiohttp import web

from .config import IntegrityConfig
from .core.dependency import parse_dependency
from .core.duplicates import ConflictResolution, StoreDuplicateValidator
from .core.errors import ValidationErrorType
from .core.snippet import SnippetError, StoreSnapshot, coerce_snippet
from .core.validator import DependencyValidator, ValidationContext, ValidationOptions
from .core.workflow import ValidationWorkflowManager

logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", IntegrityConfig)
VALIDATOR_KEY = web.AppKey("validator", DependencyValidator)
DUPLICATE_VALIDATOR_KEY = web.AppKey("duplicate_validator", StoreDuplicateValidator)
WORKFLOW_KEY = web.AppKey("workflow", ValidationWorkflowManager)


class RequestError(ValueError):
    """Raised for well-formed JSON that does not describe a valid request"""
    pass


# =============================================================================
# Helpers
# =============================================================================

def validate_request_json(request_data: Any) -> Tuple[bool, Optional[str], Optional[list]]:
    """
    Validate basic request JSON structure.

    Args:
        request_data: The parsed JSON data from the request

    Returns:
        Tuple of (is_valid, error_message, error_details)
    """
    if not isinstance(request_data, dict):
        return False, "Request body must be a JSON object", ["Invalid data format"]

    return True, None, None


def create_success_response(message: str, data: Any, status: int = 200) -> web.Response:
    """
    Create a standardized success response.

    Args:
        message: Success message
        data: Response data
        status: HTTP status code

    Returns:
        JSON response object
    """
    return web.json_response({
        "success": True,
        "message": message,
        "data": data,
        "errors": []
    }, status=status)


def create_error_response(message: str, errors: list, status: int = 400) -> web.Response:
    """
    Create a standardized error response.

    Args:
        message: Error message
        errors: List of error details
        status: HTTP status code

    Returns:
        JSON response object
    """
    return web.json_response({
        "success": False,
        "message": message,
        "errors": errors
    }, status=status)


async def read_request_json(request: web.Request) -> Tuple[Optional[Dict[str, Any]], Optional[web.Response]]:
    """
    Parse and check the request body.

    Returns:
        Tuple of (request_data, error_response); exactly one is None
    """
    try:
        request_data = await request.json()
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in request: {e}")
        return None, create_error_response("Invalid JSON format", [str(e)], status=400)

    is_valid, message, errors = validate_request_json(request_data)
    if not is_valid:
        return None, create_error_response(message or "Validation error", errors or [], status=400)

    return request_data, None


def require_field(request_data: Dict[str, Any], field_name: str, expected_type: type = dict) -> Any:
    value = request_data.get(field_name)
    if value is None:
        raise RequestError(f"Missing required field: {field_name}")
    if not isinstance(value, expected_type):
        raise RequestError(f"Field '{field_name}' must be a {expected_type.__name__}")
    return value


def build_snapshot(request_data: Dict[str, Any]) -> StoreSnapshot:
    return StoreSnapshot.from_dict(require_field(request_data, "snapshot"))


def build_options(app: web.Application, request_data: Dict[str, Any]) -> ValidationOptions:
    """Options from the app config, then the request's profile and overrides"""
    config = app[CONFIG_KEY]
    profile = request_data.get("profile")
    options = ValidationOptions.preset(profile) if profile else config.validation_options()

    overrides = request_data.get("options") or {}
    if not isinstance(overrides, dict):
        raise RequestError("Field 'options' must be a dict")
    unknown = set(overrides) - set(ValidationOptions.__dataclass_fields__)
    if unknown:
        raise RequestError(f"Unknown validation options: {sorted(unknown)}")

    return options.replace(**overrides)


def build_context(app: web.Application, request_data: Dict[str, Any]) -> ValidationContext:
    return ValidationContext(
        snapshot=build_snapshot(request_data),
        current_store=str(request_data.get("current_store") or ""),
        options=build_options(app, request_data),
        user_id=request_data.get("user_id"),
        session_id=request_data.get("session_id"),
    )


def bad_request(message: str, error: Exception) -> web.Response:
    logger.error(f"{message}: {error}")
    return create_error_response(message, [str(error)], status=400)


def server_error(message: str, error: Exception) -> web.Response:
    logger.error(f"Server error - {message}: {error}", exc_info=True)
    return create_error_response(message, ["An unexpected error occurred"], status=500)


# =============================================================================
# Dependency handlers
# =============================================================================

async def parse_dependencies(request: web.Request) -> web.Response:
    """
    Parse dependency tokens without resolving them.

    Body: {"dependencies": ["store:trigger:id", ...]}
    """
    request_data, error_response = await read_request_json(request)
    if error_response is not None:
        return error_response

    try:
        tokens = require_field(request_data, "dependencies", list)
        parsed = [parse_dependency(token).to_dict() for token in tokens]
        return create_success_response("Dependencies parsed successfully", parsed)
    except RequestError as e:
        return bad_request("Validation error", e)
    except Exception as e:
        return server_error("Failed to parse dependencies", e)


async def resolve_dependencies(request: web.Request) -> web.Response:
    """
    Resolve dependency tokens against a snapshot.

    Body: {"snapshot": {...}, "dependencies": [...]}
    """
    request_data, error_response = await read_request_json(request)
    if error_response is not None:
        return error_response

    try:
        snapshot = build_snapshot(request_data)
        tokens = require_field(request_data, "dependencies", list)
        resolver = request.app[VALIDATOR_KEY].resolver
        resolutions = resolver.resolve_dependencies(tokens, snapshot)
        return create_success_response("Dependencies resolved successfully", {
            "resolutions": [resolution.to_dict() for resolution in resolutions],
            "stats": resolver.last_stats.to_dict(),
        })
    except (RequestError, SnippetError) as e:
        return bad_request("Validation error", e)
    except Exception as e:
        return server_error("Failed to resolve dependencies", e)


# =============================================================================
# Validation handlers
# =============================================================================

async def validate_snippet(request: web.Request) -> web.Response:
    """
    Validate one snippet's dependencies.

    Body: {"snapshot": {...}, "snippet": {...}, "current_store": "...",
           "profile": "fast|default|thorough", "options": {...}}
    """
    request_data, error_response = await read_request_json(request)
    if error_response is not None:
        return error_response

    try:
        context = build_context(request.app, request_data)
        snippet = require_field(request_data, "snippet")
        result = await request.app[VALIDATOR_KEY].validate_snippet(snippet, context)
        return create_success_response("Snippet validated", result.to_dict())
    except (RequestError, SnippetError, ValueError) as e:
        return bad_request("Validation error", e)
    except Exception as e:
        return server_error("Failed to validate snippet", e)


async def validate_store(request: web.Request) -> web.Response:
    """
    Validate every snippet of one store, including its duplicate-id check.

    Body: {"snapshot": {...}, "store_id": "...", "profile": ..., "options": {...}}
    """
    request_data, error_response = await read_request_json(request)
    if error_response is not None:
        return error_response

    try:
        context = build_context(request.app, request_data)
        store_id = require_field(request_data, "store_id", str)
        result = await request.app[WORKFLOW_KEY].validate_store_consistency(store_id, context)
        return create_success_response("Store validated", result.to_dict())
    except (RequestError, SnippetError, ValueError) as e:
        return bad_request("Validation error", e)
    except Exception as e:
        return server_error("Failed to validate store", e)


async def check_deletion(request: web.Request) -> web.Response:
    """
    Check whether a snippet can be deleted without breaking dependents.

    Body: {"snapshot": {...}, "snippet": {...}, "current_store": "..."}
    """
    request_data, error_response = await read_request_json(request)
    if error_response is not None:
        return error_response

    try:
        context = build_context(request.app, request_data)
        snippet = require_field(request_data, "snippet")
        result = await request.app[WORKFLOW_KEY].validate_dependencies_before_deletion(snippet, context)
        return create_success_response("Deletion check completed", result.to_dict())
    except (RequestError, SnippetError, ValueError) as e:
        return bad_request("Validation error", e)
    except Exception as e:
        return server_error("Failed to check deletion", e)


# =============================================================================
# Duplicate-id handlers
# =============================================================================

async def validate_duplicates(request: web.Request) -> web.Response:
    """
    Find duplicate ids in every store of a snapshot, or in one store.

    Body: {"snapshot": {...}, "store_id": optional}
    """
    request_data, error_response = await read_request_json(request)
    if error_response is not None:
        return error_response

    try:
        snapshot = build_snapshot(request_data)
        duplicate_validator = request.app[DUPLICATE_VALIDATOR_KEY]
        options = request.app[CONFIG_KEY].duplicate_options()

        store_id = request_data.get("store_id")
        if store_id is not None:
            store = snapshot.get(store_id)
            if store is None:
                return create_error_response(f"Store '{store_id}' not found",
                                             [f"Store '{store_id}' does not exist"], status=404)
            reports = duplicate_validator.validate_multiple_stores([store], **options)
        else:
            reports = list(duplicate_validator.validate_snapshot(snapshot, **options).values())

        return create_success_response("Duplicate validation completed", {
            "reports": [report.to_dict(include_snippets=False) for report in reports],
            "is_valid": all(report.is_valid for report in reports),
            "stats": duplicate_validator.last_stats.to_dict(),
        })
    except (RequestError, SnippetError) as e:
        return bad_request("Validation error", e)
    except Exception as e:
        return server_error("Failed to validate duplicates", e)


async def check_id(request: web.Request) -> web.Response:
    """
    Check whether an id is free in a list of snippets.

    Body: {"id": "...", "snippets": [...], "exclude_index": optional int}
    """
    request_data, error_response = await read_request_json(request)
    if error_response is not None:
        return error_response

    try:
        snippet_id = require_field(request_data, "id", str)
        snippets = [coerce_snippet(item) for item in require_field(request_data, "snippets", list)]
        exclude_index = request_data.get("exclude_index")
        if exclude_index is not None and not isinstance(exclude_index, int):
            raise RequestError("Field 'exclude_index' must be an int")

        result = request.app[DUPLICATE_VALIDATOR_KEY].check_id_conflict(snippet_id, snippets, exclude_index)
        return create_success_response(result.message, result.to_dict())
    except (RequestError, SnippetError) as e:
        return bad_request("Validation error", e)
    except Exception as e:
        return server_error("Failed to check id", e)


async def resolve_duplicates(request: web.Request) -> web.Response:
    """
    Resolve duplicate ids in one store and return the snippet list to persist.

    Body: {"snapshot": {...}, "store_id": "...", "action": "keep-first|...",
           "merge_strategy": optional}
    """
    request_data, error_response = await read_request_json(request)
    if error_response is not None:
        return error_response

    try:
        context = build_context(request.app, request_data)
        store_id = require_field(request_data, "store_id", str)
        resolution = ConflictResolution(
            action=require_field(request_data, "action", str),
            merge_strategy=request_data.get("merge_strategy") or "content-priority",
        )
        result = await request.app[WORKFLOW_KEY].resolve_store_duplicates(store_id, context, resolution)
        if not result.success:
            return create_error_response(
                "Duplicate resolution failed",
                [error.message for error in result.errors],
                status=403 if any(error.kind == ValidationErrorType.PERMISSION_DENIED for error in result.errors) else 404,
            )
        return create_success_response("Duplicates resolved", result.to_dict())
    except (RequestError, SnippetError, ValueError) as e:
        return bad_request("Validation error", e)
    except Exception as e:
        return server_error("Failed to resolve duplicates", e)


# =============================================================================
# Maintenance handlers
# =============================================================================

async def get_stats(request: web.Request) -> web.Response:
    """Validation, cache and duplicate statistics"""
    try:
        validator = request.app[VALIDATOR_KEY]
        duplicate_stats = request.app[DUPLICATE_VALIDATOR_KEY].last_stats
        return create_success_response("Statistics retrieved successfully", {
            "validation": validator.get_validation_stats().to_dict(),
            "cache": validator.get_cache_stats(),
            "duplicates": duplicate_stats.to_dict() if duplicate_stats else None,
        })
    except Exception as e:
        return server_error("Failed to retrieve statistics", e)


async def clear_cache(request: web.Request) -> web.Response:
    try:
        request.app[VALIDATOR_KEY].clear_cache()
        return create_success_response("Validation cache cleared", None)
    except Exception as e:
        return server_error("Failed to clear cache", e)
