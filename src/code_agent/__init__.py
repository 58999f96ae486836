"""Autonomous code-generation agent driven by a durable task queue."""

__version__ = "0.1.0"
