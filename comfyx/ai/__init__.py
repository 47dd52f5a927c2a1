from comfyx.ai.client import ChatClient, ChatMessage, ChatSession
from comfyx.ai.prompts import build_system_prompt, build_workflow_prompt

__all__ = [
    "ChatClient",
    "ChatMessage",
    "ChatSession",
    "build_system_prompt",
    "build_workflow_prompt",
]
