"""Process-wide registry of live senders."""

import logging
import threading
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from hyper_sender.sender import DataSender

logger = logging.getLogger(__name__)

RegistryKey = tuple[str, str]


class SenderRegistry:
    """
    Registry that shares one sender per (server, data source) pair.

    Creates senders on demand and hands the same instance to every later
    caller until it is closed. Thread-safe for concurrent access.

    Example:
        registry = SenderRegistry()
        sender = DataSender.builder().to_server("hmaster:8086") \\
            .of_data_source("users").with_update_threshold(50) \\
            .in_registry(registry).build()
        ...
        registry.close_all()
    """

    def __init__(self) -> None:
        self._senders: dict[RegistryKey, "DataSender"] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._senders)

    def __contains__(self, key: RegistryKey) -> bool:
        with self._lock:
            return key in self._senders

    def get(self, server: str, data_source: str) -> Optional["DataSender"]:
        with self._lock:
            return self._senders.get((server, data_source))

    def get_or_create(
        self, server: str, data_source: str, factory: Callable[[], "DataSender"]
    ) -> "DataSender":
        """
        Return the live sender for the pair, creating it with factory if absent.

        Args:
            server: Normalized server address
            data_source: Data source name
            factory: Zero-argument callable building a new sender

        Returns:
            The shared sender
        """
        key = (server, data_source)
        with self._lock:
            sender = self._senders.get(key)
            if sender is None:
                sender = factory()
                self._senders[key] = sender
                logger.info("Registered sender for %s on %s", data_source, server)
        return sender

    def discard(self, server: str, data_source: str, sender: "DataSender") -> None:
        """Forget a sender, if it is still the registered one for the pair."""
        with self._lock:
            if self._senders.get((server, data_source)) is sender:
                del self._senders[(server, data_source)]

    def close_all(self) -> None:
        """Close every registered sender and empty the registry."""
        with self._lock:
            senders = list(self._senders.values())
            self._senders.clear()
        for sender in senders:
            sender.close()
        logger.info("Closed %d senders", len(senders))


_default_registry = SenderRegistry()


def get_default_registry() -> SenderRegistry:
    """Registry used by builders that are not given one explicitly."""
    return _default_registry
