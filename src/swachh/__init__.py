"""Swachh: civic issue reporting, voting and community scoring API."""

__version__ = "0.1.0"
