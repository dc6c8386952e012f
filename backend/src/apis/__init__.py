"""HTTP APIs for Google account linking."""
