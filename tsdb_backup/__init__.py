"""Backup, restore and health tooling for a TimescaleDB deployment."""

__version__ = "0.1.0"
