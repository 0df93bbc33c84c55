"""Resolve video pages into signed stream URLs, then download and remux them."""

__version__ = "0.1.0"
