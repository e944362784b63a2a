"""Blocker Diverter: keeps autonomous agent sessions working unattended."""

__version__ = "0.1.0"
