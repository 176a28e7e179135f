"""Test package for groundchat.

Unit tests cover the conversation core and the model adapter in isolation;
integration tests drive the HTTP/SSE API end to end.

Structure:
    - unit/: Store, reconciler, orchestrator, adapter and config tests
    - integration/: Session and streaming endpoint workflows
    - fakes.py: Scripted model adapters standing in for the Gemini API

Leverages pytest with pytest-asyncio and pytest-check for soft assertions.
"""
