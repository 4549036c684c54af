"""Data models for Notura Store."""
