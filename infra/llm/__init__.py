from infra.llm.chat import call_chat as call_llm_chat
from infra.llm.types import ChatRequest, LlmConfig, LlmError, LlmResponseError

__all__ = [
    "ChatRequest",
    "LlmConfig",
    "LlmError",
    "LlmResponseError",
    "call_llm_chat",
]
