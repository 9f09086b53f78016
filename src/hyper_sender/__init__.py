"""
Hyper Sender - batching write client for partitioned index service data sources
"""

__version__ = "0.1.0"

from hyper_sender.errors import (
    ConfigurationError,
    HyperSenderError,
    NullInputError,
    TransportError,
    ValidationError,
)
from hyper_sender.records import Action, BatchRecord
from hyper_sender.registry import SenderRegistry
from hyper_sender.sender import Builder, DataSender

__all__ = [
    "Action",
    "BatchRecord",
    "Builder",
    "ConfigurationError",
    "DataSender",
    "HyperSenderError",
    "NullInputError",
    "SenderRegistry",
    "TransportError",
    "ValidationError",
]
