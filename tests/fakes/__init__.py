"""Fake providers, clocks and fixtures for engine tests (no live network)."""

from .providers import (
    FakeBirdeye,
    FakeClock,
    FakeDexscreener,
    FakeHolderProvider,
    FakeOHLCVProvider,
    FakeOHLCVProviderAlwaysFail,
    FakeOHLCVProviderEmpty,
    FakeOHLCVProviderFailNThenSucceed,
    FakeSecurityProvider,
    make_history,
    make_pair,
    make_rows,
)

__all__ = [
    "FakeBirdeye",
    "FakeClock",
    "FakeDexscreener",
    "FakeHolderProvider",
    "FakeOHLCVProvider",
    "FakeOHLCVProviderAlwaysFail",
    "FakeOHLCVProviderEmpty",
    "FakeOHLCVProviderFailNThenSucceed",
    "FakeSecurityProvider",
    "make_history",
    "make_pair",
    "make_rows",
]
