"""infobot: watch YouTube, Instagram and LinkedIn and announce new content on Discord."""

__version__ = "1.0.0"
