"""FastAPI endpoints for the chat client.

HTTP and streaming routes with async request handling. Model replies stream
as Server-Sent Events.

Endpoints:
    - GET /health: Service health status
    - GET, POST /sessions: List and create chat sessions
    - GET, DELETE /sessions/{id}: Session history and removal
    - POST /sessions/{id}/select: Make a session current
    - POST /sessions/{id}/messages/stream: Send a message, stream the reply
"""

from groundchat.api.app import build_orchestrator, create_app

__all__ = ["build_orchestrator", "create_app"]
