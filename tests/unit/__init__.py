"""Unit tests for individual components in isolation.

Ensures fast execution with minimal dependencies.

Coverage:
    - chat/: Store mutations, stream reconciliation, exchange state machine
    - agent/: Adapter configuration and request/stream translation

Uses scripted adapters and mocks for the Gemini SDK. Leverages pytest-check
for multiple assertions per test.
"""
