"""Zion intake, proposal and qualification dialogue service."""

__version__ = "1.0.0"
