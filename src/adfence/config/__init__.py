"""
Configuration module for fence synchronization.
"""

from .settings import (
    Config,
    ConfigurationError,
    DatabaseConfig,
    FenceConfig,
)

__all__ = [
    'Config',
    'ConfigurationError',
    'DatabaseConfig',
    'FenceConfig',
]
