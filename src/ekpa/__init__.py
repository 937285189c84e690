"""Ekpa — startup workspace agent with tool calling and a ranked memory bank."""

__version__ = "0.1.0"
