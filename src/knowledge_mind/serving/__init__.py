"""
Serving — FastAPI application for the knowledge service.

``create_app()`` builds the API; run it with any ASGI server, e.g.
``uvicorn --factory knowledge_mind.serving.app:create_app``.
"""
