"""HTTP API (FastAPI) exposing batch, update, delete, webhook and health endpoints."""
