"""Core configuration, logging and infrastructure helpers."""
