"""
Configuration module for SignalRelay application.
Stores the listening, transport security and relay settings.
"""

import os
from typing import Any, Dict, List


def _split_origins(value: str) -> List[str]:
    return [origin.strip() for origin in value.split(",") if origin.strip()]


class Config:
    """Application configuration class."""

    # Server Configuration
    DEFAULT_HOST = os.environ.get("SIGNALRELAY_HOST", "0.0.0.0")
    DEFAULT_PORT = int(os.environ.get("PORT", "3000"))

    # WebSocket sub-protocol requested by the browser client
    SUBPROTOCOL = "json"

    # TLS key and certificate; plain ws:// is used when either is missing
    KEY_FILE = os.environ.get("SIGNALRELAY_KEY_FILE", "./keys/key.pem")
    CERT_FILE = os.environ.get("SIGNALRELAY_CERT_FILE", "./keys/cert.pem")

    # Empty list means every origin is accepted
    ALLOWED_ORIGINS = _split_origins(os.environ.get("SIGNALRELAY_ALLOWED_ORIGINS", ""))

    # Outbound buffer per connection; the oldest payload is dropped when full
    SEND_QUEUE_SIZE = int(os.environ.get("SIGNALRELAY_SEND_QUEUE_SIZE", "256"))

    # Keepalive, handled by the websockets library
    PING_INTERVAL = 20
    PING_TIMEOUT = 20

    @classmethod
    def get_config(cls) -> Dict[str, Any]:
        """Get all configuration values as a dictionary."""
        return {
            "DEFAULT_HOST": cls.DEFAULT_HOST,
            "DEFAULT_PORT": cls.DEFAULT_PORT,
            "SUBPROTOCOL": cls.SUBPROTOCOL,
            "KEY_FILE": cls.KEY_FILE,
            "CERT_FILE": cls.CERT_FILE,
            "ALLOWED_ORIGINS": list(cls.ALLOWED_ORIGINS),
            "SEND_QUEUE_SIZE": cls.SEND_QUEUE_SIZE,
            "PING_INTERVAL": cls.PING_INTERVAL,
            "PING_TIMEOUT": cls.PING_TIMEOUT,
        }


# Create config instance
config = Config()
