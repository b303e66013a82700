"""Debounced WhatsApp turn relay between a messaging gateway and an assistant backend."""

__version__ = "0.1.0"
