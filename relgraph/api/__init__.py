"""
relgraph.api — Optional FastAPI surface (requires fastapi + pydantic).

Modules:
    endpoints — create_app(controller): snapshot, gesture and event routes.
"""
