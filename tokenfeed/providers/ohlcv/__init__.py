"""Candle (OHLCV) adapters, tried in configured priority order."""
