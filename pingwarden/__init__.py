"""
pingwarden - dead-man's-switch heartbeat monitoring.

Jobs ping a unique endpoint when they finish; pingwarden works out whether
each job is on schedule and alerts when it is not.
"""

__version__ = "0.1.0"
