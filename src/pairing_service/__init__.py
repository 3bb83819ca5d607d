"""OpenClaw pairing service: relays pairing approvals to Railway-hosted workers."""

from importlib import metadata

try:
    __version__ = metadata.version("pairing-service")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0-dev"

__all__ = ["__version__"]
