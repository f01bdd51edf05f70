"""Scheduled checksum sweeps over a digital repository."""

__version__ = "0.1.0"
