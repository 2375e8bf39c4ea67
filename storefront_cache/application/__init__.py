"""HTTP application layer: FastAPI factory, middleware and routes."""
