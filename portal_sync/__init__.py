"""Incremental SugarCRM to portal synchronization."""

__version__ = "0.1.0"
