"""Batch records delivered to the index service."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Action(str, Enum):
    """Kind of write operation carried by a batch."""

    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class BatchRecord:
    """
    One assembled batch for a single data source partition.

    Rows are delimiter-joined payloads in caller order. Only update batches
    carry the column list the row values line up with.
    """

    action: Action
    data_source: str
    partition_num: int
    rows: list[str]
    columns: Optional[list[str]] = field(default=None)

    def __len__(self) -> int:
        return len(self.rows)

    def to_dict(self) -> dict[str, Any]:
        """Logical wire shape of the batch."""
        record: dict[str, Any] = {
            "action": self.action.value,
            "dataSource": self.data_source,
            "partitionNum": self.partition_num,
            "rows": list(self.rows),
        }
        if self.columns is not None:
            record["columns"] = list(self.columns)
        return record


def make_batch_record(key, data_source: str, rows: list[str]) -> BatchRecord:
    """
    Build the record for a cache key from a snapshot of its rows.

    Args:
        key: BatchKey the rows were queued under
        data_source: Data source the sender writes to
        rows: Payloads to send, in queue order

    Returns:
        BatchRecord ready to hand to a transport
    """
    columns = None
    if key.action is Action.UPDATE:
        columns = [c.strip() for c in key.columns.split(",") if c.strip()]
    return BatchRecord(
        action=key.action,
        data_source=data_source,
        partition_num=key.partition_num,
        rows=list(rows),
        columns=columns,
    )
