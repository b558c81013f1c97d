"""Warrant cache client, memory and Redis stores, and a WSGI check server."""

__version__ = "0.1.0"