"""
Notura Store - persistence and retrieval layer for the Notura note-taking app.
This package stores notes, hierarchical collections and attached images in an
embedded SQLite database and provides FTS5 full-text search over note content.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notura-store")
except PackageNotFoundError:
    __version__ = "0.1.0"
