"""Sideport - runtime capture and extension bridge.

Captures a host engine that never exposes itself, patches it in place, and
sideloads extensions the host knows nothing about.
"""

from sideport.bridge import Bridge
from sideport.core.settings import BridgeSettings
from sideport.models.context import BridgeContext

__version__ = "0.1.0"

__all__ = ["Bridge", "BridgeContext", "BridgeSettings", "__version__"]
