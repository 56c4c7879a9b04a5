"""Oil Portrait Studio - FastAPI REST API layer.

This package contains the FastAPI application, Pydantic request/response
models, authentication dependencies and listing helpers.

Modules
-------
main
    Application factory with all route handlers and the ``main()`` CLI
    entry point.
models
    Pydantic models for API request and response validation.
auth
    Session-token principal resolution and webhook signature checks.
listing
    Clamped, database-side pagination for the gallery and admin views.
"""
