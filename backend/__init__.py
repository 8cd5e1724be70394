"""
Planboard Backend - HTTP boundary for the scheduling core.

This package provides a FastAPI backend that loads projects from a JSON
store, applies edit commands and serves dashboard snapshots to the
frontend.
"""
