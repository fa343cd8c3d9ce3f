"""Command line interface for the rulebook server."""
