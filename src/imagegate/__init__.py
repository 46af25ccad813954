"""Imagegate - HTTP gateway from text prompts to a text-to-image backend."""

__version__ = "0.1.0"
