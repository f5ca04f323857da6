"""Smoke-free area regulations Q&A chatbot."""

__version__ = "1.0.0"
