"""Feed-to-newsletter curation pipeline."""

__version__ = "0.1.0"
