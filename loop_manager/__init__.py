"""Leveraged position loop construction and automated unwind engine."""

__version__ = "0.1.0"
