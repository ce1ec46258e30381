"""clarity-bridge: MCP access to a Clarity PPM database, plus an HTTP relay."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("clarity-bridge")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from clarity_bridge.relay import Relay

__all__ = ["Relay", "__version__"]
