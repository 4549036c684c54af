"""Service layer for Notura Store."""
