"""
Partition routing for primary values.

Every action on the same primary value must land in the same partition
queue, so routing is a pure function of the value and the partition count.
"""

import hashlib
from typing import Any, Callable

from hyper_sender.errors import ConfigurationError


def get_partition_num(primary_value: Any, partitions: int) -> int:
    """
    Determine which partition owns a primary value.

    The value is rendered as text first, so 1003 and "1003" route to the same
    partition.

    Args:
        primary_value: Primary column value of the row
        partitions: Total number of partitions of the data source

    Returns:
        Partition number (0 to partitions-1)
    """
    if partitions < 1:
        raise ConfigurationError(f"Partition count must be positive, got: {partitions}")
    digest = hashlib.md5(str(primary_value).encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big") % partitions


class PartitionRouter:
    """
    Routes primary values using the live partition count.

    The count is re-queried on every call so repartitioning of the data
    source is picked up without restarting the sender.
    """

    def __init__(
        self,
        count_provider: Callable[[], int],
        partition_fn: Callable[[Any, int], int] = get_partition_num,
    ):
        """
        Initialize router.

        Args:
            count_provider: Callable returning the current partition count
            partition_fn: Maps (primary value, partition count) to a partition
        """
        self._count_provider = count_provider
        self._partition_fn = partition_fn

    def partition_count(self) -> int:
        return self._count_provider()

    def route(self, primary_value: Any) -> int:
        return self._partition_fn(primary_value, self.partition_count())
