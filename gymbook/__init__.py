"""Gym offer booking core: rate engine and booking lifecycle."""

__version__ = "0.1.0"
