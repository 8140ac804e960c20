"""
mcpfs: filesystem tools for language models over a session-aware JSON-RPC toolhost.
"""

__version__ = "1.0.0"
