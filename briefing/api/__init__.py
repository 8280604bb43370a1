"""HTTP boundary: FastAPI app, brief streaming route and API-key security."""
