"""
API Routes for Snippet Integrity

Registers the JSON API endpoints on an aiohttp application. The handler
implementations live in api_handlers.

Endpoints (under the configured prefix, "/snippet_integrity" by default):
- POST dependencies/parse, dependencies/resolve
- POST validate/snippet, validate/store
- POST duplicates/validate, duplicates/check_id, duplicates/resolve
- POST deletion/check
- GET stats, DELETE cache
"""

import logging
import os
from typing import Optional

from aiohttp import web

from .api_handlers import (
    CONFIG_KEY,
    DUPLICATE_VALIDATOR_KEY,
    VALIDATOR_KEY,
    WORKFLOW_KEY,
    check_deletion,
    check_id,
    clear_cache,
    get_stats,
    parse_dependencies,
    resolve_dependencies,
    resolve_duplicates,
    validate_duplicates,
    validate_snippet,
    validate_store,
)
from .config import IntegrityConfig, load_config
from .core.duplicates import StoreDuplicateValidator
from .core.validator import DependencyValidator
from .core.workflow import StorePermissions, ValidationWorkflowManager

logger = logging.getLogger(__name__)


def setup_api_routes(prefix: str) -> web.RouteTableDef:
    """Route table for all endpoints under ``prefix``"""
    routes = web.RouteTableDef()

    routes.post(f"{prefix}/dependencies/parse")(parse_dependencies)
    routes.post(f"{prefix}/dependencies/resolve")(resolve_dependencies)
    routes.post(f"{prefix}/validate/snippet")(validate_snippet)
    routes.post(f"{prefix}/validate/store")(validate_store)
    routes.post(f"{prefix}/duplicates/validate")(validate_duplicates)
    routes.post(f"{prefix}/duplicates/check_id")(check_id)
    routes.post(f"{prefix}/duplicates/resolve")(resolve_duplicates)
    routes.post(f"{prefix}/deletion/check")(check_deletion)
    routes.get(f"{prefix}/stats")(get_stats)
    routes.delete(f"{prefix}/cache")(clear_cache)

    return routes


def create_app(config: Optional[IntegrityConfig] = None,
               permissions: Optional[StorePermissions] = None) -> web.Application:
    """
    Create the API application.

    The application owns one validator, duplicate validator and workflow manager;
    nothing is shared between applications.

    Args:
        config: Settings; defaults to load_config()
        permissions: Store permissions used when resolving duplicates

    Returns:
        Configured aiohttp application
    """
    config = config or load_config()

    validator = DependencyValidator()
    duplicate_validator = StoreDuplicateValidator()

    app = web.Application()
    app[CONFIG_KEY] = config
    app[VALIDATOR_KEY] = validator
    app[DUPLICATE_VALIDATOR_KEY] = duplicate_validator
    app[WORKFLOW_KEY] = ValidationWorkflowManager(
        validator,
        duplicate_validator=duplicate_validator,
        permissions=permissions,
    )

    app.add_routes(setup_api_routes(config.api_prefix))
    logger.info(f"Registered snippet integrity API under {config.api_prefix} (profile: {config.profile})")
    return app


def main() -> None:
    """Serve the API; host and port come from SNIPPET_INTEGRITY_HOST / SNIPPET_INTEGRITY_PORT"""
    logging.basicConfig(level=logging.INFO)
    host = os.environ.get("SNIPPET_INTEGRITY_HOST", "127.0.0.1")
    port = int(os.environ.get("SNIPPET_INTEGRITY_PORT", "8188"))
    web.run_app(create_app(), host=host, port=port)
