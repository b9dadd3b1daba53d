"""pingwarden HTTP API."""
