"""
Valkey client wrapper with lazy connection and retry on connect.

The pool only ever talks to the store through the ``client`` property,
which connects on first use. Individual commands are not retried here;
store errors propagate to the caller.
"""

import logging
import time
from typing import Optional, Any, Dict

import valkey
from valkey.connection import ConnectionPool
from valkey.exceptions import ConnectionError, TimeoutError

from .config import ValkeyConfig, ValkeyConnectionError

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Valkey client with connect-on-demand and scoped release.

    Features:
    - Connection pooling with configurable pool size
    - Lazy connection on first use of ``client``
    - Exponential backoff while establishing the connection
    - Context manager support guaranteeing ``close()``
    """

    def __init__(self, config: Optional[ValkeyConfig] = None):
        """
        Initialize Valkey client with configuration.

        Args:
            config: ValkeyConfig instance, defaults to environment-based config
        """
        self.config = config or ValkeyConfig.from_env()
        self._client: Optional[valkey.Valkey] = None
        self._connection_pool: Optional[ConnectionPool] = None
        self._connection_attempts = 0
        self._reconnect_delay = 1.0  # Start with 1 second delay
        self._max_reconnect_delay = 30.0  # Max 30 seconds between attempts

        logger.info(f"Initializing Valkey client: {self.config}")

    def connect(self) -> None:
        """
        Establish connection to Valkey server with retry logic.

        Raises:
            ValkeyConnectionError: If connection cannot be established after max attempts
        """
        if self._client is not None:
            return

        max_attempts = self.config.max_connection_attempts
        self._connection_attempts = 0

        while self._connection_attempts < max_attempts:
            self._connection_attempts += 1
            logger.info(f"Attempting Valkey connection (attempt {self._connection_attempts})")

            pool = ConnectionPool(**self.config.to_connection_pool_kwargs())
            client = valkey.Valkey(connection_pool=pool)
            try:
                client.ping()
            except (ConnectionError, TimeoutError, OSError) as e:
                pool.disconnect()
                logger.warning(
                    f"Valkey connection attempt {self._connection_attempts} failed: {e}"
                )

                if self._connection_attempts >= max_attempts:
                    error_msg = (
                        f"Failed to connect to Valkey after {max_attempts} attempts. "
                        f"Last error: {e}"
                    )
                    logger.error(error_msg)
                    raise ValkeyConnectionError(error_msg) from e

                delay = min(self._reconnect_delay * (2 ** (self._connection_attempts - 1)),
                            self._max_reconnect_delay)
                logger.info(f"Retrying connection in {delay:.1f} seconds...")
                time.sleep(delay)
                continue

            self._connection_pool = pool
            self._client = client
            logger.info("Successfully connected to Valkey server")
            return

    def close(self) -> None:
        """Release the connection pool. Safe to call more than once."""
        if self._connection_pool is None:
            return
        try:
            self._connection_pool.disconnect()
            logger.info("Disconnected from Valkey server")
        finally:
            self._connection_pool = None
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if a connection has been established."""
        return self._client is not None

    @property
    def client(self) -> valkey.Valkey:
        """
        Get the underlying Valkey client, connecting if necessary.

        Returns:
            valkey.Valkey: The Valkey client instance
        """
        if self._client is None:
            self.connect()
        return self._client

    def get_connection_info(self) -> Dict[str, Any]:
        """
        Get connection information.

        Returns:
            Dict[str, Any]: Connection information
        """
        return {
            "is_connected": self.is_connected,
            "config": str(self.config),
            "connection_attempts": self._connection_attempts,
        }

    def __enter__(self) -> "ValkeyClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
