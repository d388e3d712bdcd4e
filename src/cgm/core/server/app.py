"""CGM Libre bridge MCP server — application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from cgm.core.config.settings import Settings, get_settings
from cgm.core.oop.client import LibreOOPClient
from cgm.domains.libre.connectors.local import LocalLibreDecoder
from cgm.domains.libre.connectors.processor import LibreDataProcessor
from cgm.domains.libre.connectors.web_oop import WebOOPDecoder
from cgm.domains.libre.tools.libre_tools import register_libre_tools

logger = logging.getLogger(__name__)

SERVER_VERSION = "0.1.0"


def build_processor(
    settings: Settings,
    *,
    oop_client_override: LibreOOPClient | None = None,
) -> LibreDataProcessor:
    """Wire the local decoder and, when configured, the web OOP decoder."""
    local = LocalLibreDecoder(multiplier=settings.libre_multiplier)

    web: WebOOPDecoder | None = None
    if oop_client_override is not None:
        web = WebOOPDecoder(oop_client_override)
    elif settings.web_oop_enabled:
        if settings.oop_web_site and settings.oop_web_token:
            from fastmcp import Client as MCPClient

            oop_mcp = MCPClient(settings.oop_web_site, auth=settings.oop_web_token)
            web = WebOOPDecoder(LibreOOPClient(oop_mcp))
            logger.info("Web OOP client configured for %s", settings.oop_web_site)
        else:
            logger.warning(
                "WEB_OOP_ENABLED is set but OOP_WEB_SITE/OOP_WEB_TOKEN are missing; "
                "falling back to local decoding"
            )

    return LibreDataProcessor(
        local,
        web_decoder=web,
        web_oop_enabled=settings.web_oop_enabled,
    )


def create_app(
    *,
    processor_override: LibreDataProcessor | None = None,
) -> FastMCP:
    """Create and configure the CGM Libre bridge MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Builds the block processor (local decoder, optional web OOP decoder)
    3. Registers the health check and Libre decoding tools
    """
    settings = get_settings()

    server = FastMCP(
        "CGM Libre Bridge",
        instructions=(
            "Decodes FreeStyle Libre 344-byte sensor memory blocks into "
            "timestamped glucose readings with sensor state and age. "
            "Callers keep the last reading timestamp and pass it back to "
            "receive only new readings."
        ),
    )

    processor = processor_override or build_processor(settings)
    logger.info("Libre block processor ready (mode: %s)", processor.mode)

    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": "CGM Libre Bridge",
            "version": SERVER_VERSION,
            "decoder_mode": processor.mode,
            "libre_multiplier": settings.libre_multiplier,
            "web_oop_enabled": settings.web_oop_enabled,
        }

    register_libre_tools(server, processor)

    return server


# Module-level instance for FastMCP discovery ("...app.py:mcp").
# Lazy: only created when accessed (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
