"""NiceGUI interface - thin visualization layer for chat interactions.

Delivers a responsive web UI with real-time updates.

Responsibilities:
    - Chat message display with streaming support and source links
    - Image attachment for multimodal prompts
    - Session sidebar with new-chat and history navigation
    - Model selection

Contains minimal business logic. Delegates all operations to the API.
Remains a pure presentation layer.
"""
