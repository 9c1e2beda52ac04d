"""Position risk engine for over-collateralized lending pools."""

__version__ = "0.1.0"
