"""iamsync - declarative reconciliation of OCI identity policies."""

__version__ = "0.1.0"
