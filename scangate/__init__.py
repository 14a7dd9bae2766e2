"""scangate: security scan gate for platform releases."""

__version__ = "0.1.0"
