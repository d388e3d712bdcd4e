"""CGM Libre bridge entry point (``cgm-server`` or ``python -m cgm.core.server.main``).

Serves over Streamable HTTP by default. ``CGM_TRANSPORT=stdio`` runs the
server as a subprocess of a single local MCP client instead; no socket is
bound, so the bind guard does not apply.
"""

from __future__ import annotations

import logging
from ipaddress import ip_address

from cgm.core.config.settings import Settings, get_settings
from cgm.core.server.app import create_app

logger = logging.getLogger(__name__)

HTTP_TRANSPORT = "streamable-http"
STDIO_TRANSPORT = "stdio"
TRANSPORTS = (HTTP_TRANSPORT, STDIO_TRANSPORT)


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def _check_transport(settings: Settings) -> str:
    """Validate the configured transport and the bind address it implies.

    Raises:
        RuntimeError: On an unknown transport, or an HTTP bind to a
            non-loopback host without ``CGM_ALLOW_INSECURE_BIND``.
    """
    transport = settings.cgm_transport.strip().lower()
    if transport not in TRANSPORTS:
        raise RuntimeError(
            f"Unknown CGM_TRANSPORT {settings.cgm_transport!r}; "
            f"expected one of {', '.join(TRANSPORTS)}"
        )
    if (
        transport == HTTP_TRANSPORT
        and not settings.cgm_allow_insecure_bind
        and not _is_loopback_host(settings.cgm_host)
    ):
        raise RuntimeError(
            "Refusing to serve glucose readings on a non-loopback host without an auth layer. "
            "Set CGM_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    return transport


def run() -> None:
    """Start the CGM Libre bridge MCP server."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.cgm_log_level.upper(), logging.INFO))

    transport = _check_transport(settings)
    mcp = create_app()

    if transport == STDIO_TRANSPORT:
        logger.info("Starting CGM Libre bridge on stdio")
        mcp.run(transport=STDIO_TRANSPORT)
        return

    logger.info(
        "Starting CGM Libre bridge on %s:%d (multiplier %s, web OOP %s)",
        settings.cgm_host,
        settings.cgm_port,
        settings.libre_multiplier,
        "on" if settings.web_oop_enabled else "off",
    )
    mcp.run(
        transport=HTTP_TRANSPORT,
        host=settings.cgm_host,
        port=settings.cgm_port,
    )


if __name__ == "__main__":
    run()
