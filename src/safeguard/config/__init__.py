"""
Configuration loading for the safeguard process.
"""

from .config_loader import (
    DEFAULT_CONFIG,
    DIGEST_ALGORITHMS,
    DirectoryPair,
    SafeguardConfig,
    TableProtection,
    save_default_config,
)

__all__ = [
    "DEFAULT_CONFIG",
    "DIGEST_ALGORITHMS",
    "DirectoryPair",
    "SafeguardConfig",
    "TableProtection",
    "save_default_config",
]
