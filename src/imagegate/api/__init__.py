"""Imagegate — FastAPI HTTP layer.

Modules
-------
main
    FastAPI application factory, the ``POST /api/generate-image`` route and
    the ``main()`` CLI entry point.
gateway
    Calls the backend with normalized options and maps the outcome to an
    HTTP response.
models
    Pydantic models for the JSON error envelopes.
"""
