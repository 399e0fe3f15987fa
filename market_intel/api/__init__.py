"""REST API layer (FastAPI router, schemas, middleware)."""
