"""Appointment scheduling core for a hospital record keeper."""

__version__ = "0.1.0"
