"""Operator console for the RCA retrieval backend: sync-job tracking, search and stats."""

__version__ = "0.1.0"
