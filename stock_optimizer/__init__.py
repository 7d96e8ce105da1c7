"""Portfolio optimization engine: indicators, predictions, reallocation and tracking."""

__version__ = "0.3.0"
