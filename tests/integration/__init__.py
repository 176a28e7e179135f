"""Integration tests for components working together as a system.

Drives the real FastAPI app over ASGI with a scripted model adapter in place
of the Gemini API, so no API key or network access is needed.

Coverage:
    - Session endpoints (create, list, select, delete)
    - SSE message streaming, including failures and busy sessions
"""
