"""pingwarden command line interface."""
