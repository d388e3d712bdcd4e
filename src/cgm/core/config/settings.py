"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """CGM Libre bridge configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default: decoded glucose readings are personal health data.
    cgm_host: str = "127.0.0.1"
    cgm_port: int = 8001
    cgm_log_level: str = "info"
    # "streamable-http" or "stdio". stdio serves a single local client and
    # never binds a socket.
    cgm_transport: str = "streamable-http"
    # Binding to a non-loopback host is refused unless this is set true
    # (there is no auth layer).
    cgm_allow_insecure_bind: bool = False

    # Decoding
    # Raw 13-bit sensor code -> mg/dL. Sensor-family dependent.
    libre_multiplier: float = 117.64705

    # Web OOP (remote decoder reachable over MCP)
    web_oop_enabled: bool = False
    oop_web_site: str = ""
    oop_web_token: str = ""


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
