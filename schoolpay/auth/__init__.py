"""Bearer token authentication for API callers."""
