"""Application API service."""
