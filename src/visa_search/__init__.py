"""Visa-sponsorship aware job search for the Dutch market."""

__version__ = "0.1.0"
