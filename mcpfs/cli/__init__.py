"""Command-line interface for mcpfs."""
