"""
Resilient multi-source token market data.
Canonical entrypoint: tokenfeed.engine.Engine; the API and CLI are thin layers over it.
Does not import cli or api.
"""

from __future__ import annotations

from ._version import __version__
from .candles import Candle
from .errors import ProviderExhaustedError, TokenFeedError
from .orchestrator import NormalizedResult

# Do not add exports without updating __all__.
__all__ = [
    "Candle",
    "NormalizedResult",
    "ProviderExhaustedError",
    "TokenFeedError",
    "__version__",
]
