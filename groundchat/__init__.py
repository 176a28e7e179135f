"""groundchat - streaming Gemini chat with image attachments and citations.

Combines FastAPI for HTTP streaming, google-genai for model access,
NiceGUI for visualization, and Pydantic for data validation.

Components:
    - chat: conversation store, stream reconciliation, exchange orchestration
    - agent: Gemini model adapter and its configuration
    - api: HTTP endpoints and Server-Sent Event streams
    - ui: Web interface for chat interactions
    - models: Conversation and request/response schemas
"""

__version__ = "0.1.0"
