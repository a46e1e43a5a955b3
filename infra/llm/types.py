from dataclasses import dataclass
from typing import Optional


class LlmError(Exception):
    pass


class LlmResponseError(LlmError):
    """Non-2xx answer from the chat endpoint."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__("LLM endpoint returned {}: {}".format(status, body[:300]))


@dataclass
class LlmConfig:
    provider: str = "openai"
    model: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: int = 1024
    timeout: float = 60.0


@dataclass
class ChatRequest:
    """One system + user turn; the screenshot rides along as base64 PNG."""

    system_prompt: str
    prompt: str
    image_b64: Optional[str] = None
