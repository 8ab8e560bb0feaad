"""Protocol resolution: stage graphs, mixin imports and validation."""

from specfirst.protocol.resolver import (
    ResolutionContext,
    list_protocols,
    load_protocol,
    protocol_path,
)
from specfirst.protocol.types import Approval, Protocol, Stage
from specfirst.protocol.validation import validate_protocol

__all__ = [
    "Approval",
    "Protocol",
    "ResolutionContext",
    "Stage",
    "list_protocols",
    "load_protocol",
    "protocol_path",
    "validate_protocol",
]
