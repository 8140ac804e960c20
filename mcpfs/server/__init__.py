"""HTTP surface of the mcpfs toolhost."""

from mcpfs.server.app import create_app

__all__ = ["create_app"]
