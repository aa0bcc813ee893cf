"""Jøssing trick-taking card game server."""

__version__ = "0.1.0"
