"""Domain name suggestions with on-demand AI market research."""

__version__ = "1.0.0"
