"""Scripted chatbot backend: dialogue traversal and contact capture."""

__version__ = "0.1.0"
