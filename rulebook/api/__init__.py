"""HTTP API for the rulebook server."""
