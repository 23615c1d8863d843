"""Application exceptions and FastAPI handlers."""
