"""HTTP API (FastAPI) exposing the solve pipeline."""
