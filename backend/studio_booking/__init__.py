"""Booking admission and credit allocation engine for studio classes."""

__version__ = "0.1.0"
