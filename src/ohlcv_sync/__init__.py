"""ohlcv-sync — historical daily price acquisition with provider fallback."""

__version__ = "0.1.0"
