"""Live trade events from the ledger transaction stream."""

from .decoder import DecodeError, Side, SwapEventDecoder, TradeEvent
from .transport import StreamStatus, TransactionStream

__all__ = [
    "DecodeError",
    "Side",
    "StreamStatus",
    "SwapEventDecoder",
    "TradeEvent",
    "TransactionStream",
]
