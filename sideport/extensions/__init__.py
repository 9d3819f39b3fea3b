"""Extension normalization and sideloading."""

from .normalizer import EXTENSION_ID, ExtensionNormalizer, sanitize_id
from .loader import SideloadLoader

__all__ = ["EXTENSION_ID", "ExtensionNormalizer", "sanitize_id", "SideloadLoader"]
