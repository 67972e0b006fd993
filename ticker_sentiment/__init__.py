"""Reddit stock-ticker ingestion and sentiment scoring pipeline."""

__version__ = "0.1.0"
