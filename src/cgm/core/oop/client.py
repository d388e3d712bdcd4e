"""MCP client for a web OOP Libre decoding service.

Some Libre sensors (or users) prefer server-side decoding. The remote
service exposes a ``libre_oop_decode`` tool over MCP; this client wraps a
``fastmcp.Client`` pointed at that service and turns its responses into
the same ``LibreParseResult`` the local parser returns.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from cgm.core.oop.models import OOPEnvelope
from cgm.domains.libre.domain_logic.block_models import LibreParseResult

logger = logging.getLogger(__name__)

DECODE_TOOL = "libre_oop_decode"


class LibreOOPClient:
    """Client for a web OOP decoding server.

    Usage::

        from fastmcp import Client
        mcp = Client("https://oop.example/mcp", auth=token)
        oop = LibreOOPClient(mcp)

        result = await oop.decode(block, last_reading, serial_number="0M0008B8CSR")
    """

    def __init__(self, mcp_client: Any) -> None:
        """Initialise with a fastmcp.Client (or compatible)."""
        self._client = mcp_client

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def decode(
        self,
        block: bytes,
        last_reading_timestamp: datetime,
        *,
        serial_number: str,
        patch_info: str | None = None,
    ) -> LibreParseResult:
        """Decode a 344-byte block remotely.

        Raises:
            LibreOOPConnectionError: The service could not be reached.
            LibreOOPResponseError: The response was empty or malformed.
            LibreOOPDecodeError: The service reported a decoding error.
        """
        args: dict[str, Any] = {
            "block_hex": bytes(block).hex(),
            "serial_number": serial_number,
            "last_reading_timestamp": last_reading_timestamp.isoformat(),
        }
        if patch_info:
            args["patch_info"] = patch_info

        payload = await self._call_tool(DECODE_TOOL, args)
        try:
            envelope = OOPEnvelope.from_dict(payload)
            if not envelope.ok:
                raise LibreOOPResponseError(
                    f"Unexpected status from {DECODE_TOOL}: {envelope.status!r}"
                )
            return envelope.as_parse_result()
        except (KeyError, TypeError, ValueError) as exc:
            raise LibreOOPResponseError(
                f"Malformed response from {DECODE_TOOL}: {exc}"
            ) from exc

    async def health_check(self) -> dict[str, Any]:
        """Verify the OOP service is reachable and report status."""
        return await self._call_tool("health_check", {})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call_tool(
        self, tool_name: str, arguments: dict[str, Any]
    ) -> dict[str, Any]:
        """Call a tool on the OOP service and return the parsed JSON object."""
        logger.debug("Calling web OOP tool %s", tool_name)

        try:
            # fastmcp.Client connections are re-entrant; this is a no-op
            # when the caller already holds the session open.
            async with self._client:
                result = await self._client.call_tool(tool_name, arguments)
        except Exception:
            logger.exception("Failed to call web OOP tool %s", tool_name)
            raise LibreOOPConnectionError(
                f"Failed to call web OOP tool '{tool_name}'. "
                "Is the OOP server reachable and the token valid?"
            ) from None

        if not result:
            raise LibreOOPResponseError(f"Empty response from {tool_name}")

        payload = _extract_payload(result)
        if payload is None:
            raise LibreOOPResponseError(
                f"No usable content in response from {tool_name}"
            )

        if isinstance(payload, str):
            try:
                parsed: Any = json.loads(payload)
            except (json.JSONDecodeError, TypeError) as exc:
                raise LibreOOPResponseError(
                    f"Invalid JSON from {tool_name}: {exc}"
                ) from exc
        else:
            parsed = payload

        if not isinstance(parsed, dict):
            raise LibreOOPResponseError(
                f"Expected JSON object from {tool_name}, got {type(parsed).__name__}"
            )

        if parsed.get("status") == "error":
            raise LibreOOPDecodeError(_format_error(parsed.get("error")))

        return parsed


# ------------------------------------------------------------------
# Exceptions
# ------------------------------------------------------------------

class LibreOOPError(Exception):
    """Base exception for web OOP decoding failures."""


class LibreOOPConnectionError(LibreOOPError):
    """Could not reach the web OOP service."""


class LibreOOPResponseError(LibreOOPError):
    """Response from the web OOP service was unexpected."""


class LibreOOPDecodeError(LibreOOPError):
    """The web OOP service returned an error status."""


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _extract_payload(result: Any) -> Any | None:
    """Pull a JSON object or JSON text out of a fastmcp tool result.

    Handles a parsed dict, a raw string, a CallToolResult, a single
    content block, or a list of content blocks (json/data blocks win over
    text blocks).
    """
    if isinstance(result, (dict, str)):
        return result

    content = getattr(result, "content", None)
    if isinstance(content, list):
        blocks = content
    elif isinstance(result, list):
        blocks = result
    else:
        blocks = [result]
    for prefer_json in (True, False):
        for block in blocks:
            payload = _payload_from_block(block, prefer_json=prefer_json)
            if payload is not None:
                return payload
    return None


def _payload_from_block(block: Any, *, prefer_json: bool) -> Any | None:
    if isinstance(block, str):
        return None if prefer_json else block

    if isinstance(block, dict):
        keys = ("data", "json") if prefer_json else ("text",)
        for key in keys:
            if key in block:
                return block[key]
        return None

    attrs = ("data", "json") if prefer_json else ("text",)
    for attr in attrs:
        value = getattr(block, attr, None)
        if value is not None:
            return value
    return None


def _format_error(error: Any) -> str:
    """Format an error payload into a human-readable string."""
    if error is None:
        return "Unknown error"
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        msg = error.get("message") or error.get("code")
        return msg if isinstance(msg, str) and msg else str(error)
    return str(error)
