"""ETF watchlist tracker: synthetic quotes, two-tier watchlist persistence and migration."""

__version__ = "0.1.0"
