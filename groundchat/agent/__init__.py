"""Model adapter layer for streaming Gemini responses.

Responsibilities:
    - Adapter configuration from the environment
    - Translation of the conversation log into SDK request contents
    - Translation of streamed SDK chunks into cumulative-text StreamEvents
    - Grounding source extraction from search-grounded responses

Keeps the conversation core independent of the provider SDK.
"""

from groundchat.agent.chat_agent import GeminiAdapter, ModelAdapter, StreamOptions
from groundchat.agent.config import AgentConfig, get_agent_config

__all__ = ["AgentConfig", "GeminiAdapter", "ModelAdapter", "StreamOptions", "get_agent_config"]
