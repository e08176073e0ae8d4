"""
Cache pool configuration and exceptions.

This module provides configuration classes for the Valkey connection and
for the pool itself, with environment variable support, plus the
exception hierarchy shared by the package.
"""

import os
import logging
from typing import Optional, Dict, Any
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL = 10
DEFAULT_LOCK_PREFIX = "*lock*"

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in _TRUE_VALUES


def _env_number(name: str, default: str, cast):
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except ValueError as e:
        raise ValkeyConfigurationError(f"Invalid value for {name}: {raw!r}") from e


@dataclass
class ValkeyConfig:
    """
    Configuration class for Valkey connections with environment variable support.

    Entries are stored as bytes, so responses are never decoded by the client.
    """

    host: str = "localhost"
    port: int = 6379
    password: Optional[str] = None
    database: int = 0
    max_connections: int = 10
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0
    retry_on_timeout: bool = True
    max_connection_attempts: int = 5

    @classmethod
    def from_env(cls) -> "ValkeyConfig":
        """
        Create ValkeyConfig from environment variables.

        Returns:
            ValkeyConfig: Configuration instance with values from environment

        Raises:
            ValkeyConfigurationError: If a numeric variable cannot be parsed
        """
        return cls(
            host=os.getenv("VALKEY_HOST", "localhost"),
            port=_env_number("VALKEY_PORT", "6379", int),
            password=os.getenv("VALKEY_PASSWORD") or None,
            database=_env_number("VALKEY_DATABASE", "0", int),
            max_connections=_env_number("VALKEY_MAX_CONNECTIONS", "10", int),
            socket_timeout=_env_number("VALKEY_SOCKET_TIMEOUT", "5.0", float),
            socket_connect_timeout=_env_number("VALKEY_SOCKET_CONNECT_TIMEOUT", "5.0", float),
            retry_on_timeout=_env_bool("VALKEY_RETRY_ON_TIMEOUT", "true"),
            max_connection_attempts=_env_number("VALKEY_MAX_CONNECTION_ATTEMPTS", "5", int),
        )

    def to_connection_kwargs(self) -> Dict[str, Any]:
        """
        Convert configuration to Valkey connection parameters.

        Returns:
            Dict[str, Any]: Connection parameters for Valkey client
        """
        kwargs = {
            "host": self.host,
            "port": self.port,
            "db": self.database,
            "socket_timeout": self.socket_timeout,
            "socket_connect_timeout": self.socket_connect_timeout,
            "retry_on_timeout": self.retry_on_timeout,
            "decode_responses": False,
        }

        if self.password:
            kwargs["password"] = self.password

        return kwargs

    def to_connection_pool_kwargs(self) -> Dict[str, Any]:
        """
        Convert configuration to Valkey connection pool parameters.

        Returns:
            Dict[str, Any]: Connection pool parameters for Valkey client
        """
        kwargs = self.to_connection_kwargs()
        kwargs["max_connections"] = self.max_connections
        return kwargs

    def __str__(self) -> str:
        """String representation hiding sensitive information."""
        password_display = "***" if self.password else "None"
        return (
            f"ValkeyConfig(host={self.host}, port={self.port}, "
            f"db={self.database}, password={password_display}, "
            f"max_connections={self.max_connections})"
        )


@dataclass
class PoolConfig:
    """
    Behaviour of a CachePool: stampede protection and lock settings.
    """

    stampede_protection: bool = False
    lock_ttl: int = DEFAULT_LOCK_TTL
    lock_prefix: str = DEFAULT_LOCK_PREFIX

    def __post_init__(self):
        if self.lock_ttl <= 0:
            raise ValkeyConfigurationError(f"lock_ttl must be positive, got {self.lock_ttl}")
        if not self.lock_prefix:
            raise ValkeyConfigurationError("lock_prefix must not be empty")

    @classmethod
    def from_env(cls) -> "PoolConfig":
        """
        Create PoolConfig from environment variables.

        Returns:
            PoolConfig: Configuration instance with values from environment
        """
        return cls(
            stampede_protection=_env_bool("CACHE_POOL_STAMPEDE_PROTECTION", "false"),
            lock_ttl=_env_number("CACHE_POOL_LOCK_TTL", str(DEFAULT_LOCK_TTL), int),
            lock_prefix=os.getenv("CACHE_POOL_LOCK_PREFIX", DEFAULT_LOCK_PREFIX),
        )


class CachePoolError(Exception):
    """Base exception for cache pool errors."""
    pass


class InvalidArgumentError(CachePoolError, ValueError):
    """Raised when a cache key is not legal."""
    pass


class EntryEncodeError(CachePoolError, ValueError):
    """Raised when an item value cannot be serialized."""
    pass


class ValkeyConnectionError(CachePoolError):
    """Custom exception for Valkey connection issues."""
    pass


class ValkeyConfigurationError(CachePoolError):
    """Custom exception for Valkey configuration issues."""
    pass
