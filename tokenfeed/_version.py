"""Package version. Single source for __version__."""

__version__ = "0.3.0"
