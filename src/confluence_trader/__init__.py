"""Multi-timeframe signal confluence trader."""

__version__ = "0.1.0"
