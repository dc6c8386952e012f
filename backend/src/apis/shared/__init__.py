"""Code shared across API projects: errors, auth and persistence."""
