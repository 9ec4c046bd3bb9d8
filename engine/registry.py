"""
=========================================
Connections per logical database name.
=========================================

A ``ConnectionRegistry`` resolves a logical database name (``orders``,
``accounts``) to a master or slave configuration through a ``ConfigProvider``
and keeps one activated Connection per (name, role) until it is closed.

Example:
    >>> from core.config import EnvConfigProvider
    >>> registry = ConnectionRegistry(EnvConfigProvider())
    >>> db = registry.connection('orders')
    >>> db is registry.connection('orders')
    True
"""

import logging
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

from core.config import Options
from core.exceptions import ConfigurationError
from engine.connection import Connection

logger = logging.getLogger(__name__)


class ConfigProvider(Protocol):
    """Source of master/slave configurations for a logical name."""

    def master_config(self, name: str) -> Mapping[str, Any]:
        ...

    def slave_config(self, name: str) -> Mapping[str, Any]:
        ...


class ConnectionRegistry:
    """
    Lazily created, cached Connections keyed by (name, master).

    Args:
        provider: ConfigProvider resolving logical names
        logger: Logger handed to every Connection's Driver
    """

    def __init__(self, provider: ConfigProvider, logger: Optional[logging.Logger] = None):
        self.provider = provider
        self.logger = logger
        self._connections: Dict[Tuple[str, bool], Connection] = {}

    def connection(self, name: str, master: bool = True) -> Connection:
        """
        Return the activated Connection for ``name``.

        Raises:
            ConfigurationError: If the name is empty or its configuration invalid
        """
        if not name:
            raise ConfigurationError('Database name is empty.')

        key = (name, master)
        if key not in self._connections:
            config = self.provider.master_config(name) if master else self.provider.slave_config(name)
            options = Options.from_mapping(config)
            connection = Connection(options, self.logger).activate()
            if not connection.is_activated():
                logger.warning(f"Connection '{name}' ({self._role(master)}) not activated: {connection.get_error()}")
            self._connections[key] = connection
            logger.debug(f"Registered connection '{name}' ({self._role(master)})")

        return self._connections[key]

    @staticmethod
    def _role(master: bool) -> str:
        return 'master' if master else 'slave'

    def close(self, name: str, master: Optional[bool] = None) -> None:
        """Close the connections for ``name``; both roles when ``master`` is None."""
        roles = (True, False) if master is None else (master,)
        for role in roles:
            connection = self._connections.pop((name, role), None)
            if connection is not None:
                connection.close()

    def close_all(self) -> None:
        for connection in self._connections.values():
            connection.close()
        self._connections.clear()

    def __contains__(self, key: Any) -> bool:
        if isinstance(key, tuple):
            return key in self._connections
        return (key, True) in self._connections or (key, False) in self._connections

    def __len__(self) -> int:
        return len(self._connections)
