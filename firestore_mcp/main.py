"""
MCP server entry point.
"""

import logging
import sys
from typing import Optional

import structlog

from firestore_mcp.config import Settings, get_settings
from firestore_mcp.infrastructure import FirestoreService
from firestore_mcp.services import DocumentCache, ValueNormalizer
from firestore_mcp.tools import FirestoreTools, build_server
from firestore_mcp.utils.exceptions import ConfigurationError


# Configure structured logging
def configure_logging(settings: Settings):
    """Configure structured logging on stderr; stdout carries the MCP protocol."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, settings.log_level),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def create_tools(settings: Settings, store: Optional[FirestoreService] = None) -> FirestoreTools:
    """Wire the store, cache and normalizer together for one server lifetime."""
    store = store or FirestoreService(settings)
    cache = DocumentCache(ttl_ms=settings.cache_ttl_ms, max_size=settings.cache_max_size)
    normalizer = ValueNormalizer(store, max_depth=settings.max_depth)
    return FirestoreTools(store=store, cache=cache, normalizer=normalizer)


def main() -> None:
    """Start the MCP server over stdio."""
    settings = get_settings()
    configure_logging(settings)
    logger = structlog.get_logger()

    logger.info(
        "Server starting up",
        app_name=settings.app_name,
        version=settings.version,
        environment=settings.environment
    )

    tools = create_tools(settings)

    # Fail fast on bad credentials rather than on the first tool call
    try:
        tools.store.client
    except ConfigurationError as exc:
        logger.error("Failed to initialize Firestore", error=exc.message, details=exc.details)
        sys.exit(1)

    server = build_server(tools, name=settings.app_name)
    logger.info(
        "Document cache initialized",
        ttl_ms=tools.cache.ttl_ms,
        max_size=tools.cache.max_size
    )

    try:
        server.run()
    finally:
        logger.info("Server shutting down")
        tools.cache.clear()
        tools.store.close()
        logger.info("Resources cleaned up")


if __name__ == "__main__":
    main()
