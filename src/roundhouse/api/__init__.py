"""FastAPI routers. Thin wrappers over the engine held in ``app.state.arcade``."""
