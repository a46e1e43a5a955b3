import json
import logging

from infra.http.client import HttpError, HttpResponseError, post_json
from infra.llm.types import ChatRequest, LlmConfig, LlmError, LlmResponseError


logger = logging.getLogger("infra.llm")

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"

# Vendors speaking the OpenAI chat wire format at their own base url.
COMPAT_PROVIDERS = {
    "openai_compat",
    "openai-compat",
    "openai-compatible",
    "compat",
    "doubao",
    "ark",
    "deepseek",
    "qwen",
}


def resolve_endpoint(config: LlmConfig) -> str:
    provider = (config.provider or "").strip().lower() or "openai"
    if provider == "openai":
        return config.base_url or OPENAI_CHAT_URL
    if provider in COMPAT_PROVIDERS:
        if not config.base_url:
            raise LlmError("provider {!r} needs an LLM base url".format(provider))
        return config.base_url
    raise LlmError("unknown LLM provider: {}".format(config.provider))


def build_messages(request: ChatRequest) -> list:
    user_content = request.prompt
    if request.image_b64:
        data_url = "data:image/png;base64," + request.image_b64
        user_content = [
            {"type": "text", "text": request.prompt},
            {"type": "image_url", "image_url": {"url": data_url}},
        ]
    return [
        {"role": "system", "content": request.system_prompt},
        {"role": "user", "content": user_content},
    ]


def _extract_content(body: str) -> str:
    try:
        return json.loads(body)["choices"][0]["message"]["content"] or ""
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise LlmError("unexpected LLM response: {}".format(body[:200])) from exc


def call_chat(config: LlmConfig, request: ChatRequest) -> str:
    url = resolve_endpoint(config)
    if not config.model:
        raise LlmError("LLM model is not set")
    if not config.api_key:
        raise LlmError("LLM API key is not set")
    payload = {
        "model": config.model,
        "messages": build_messages(request),
        "max_tokens": config.max_tokens,
    }
    if config.temperature is not None:
        payload["temperature"] = config.temperature
    logger.info(
        "chat request model=%s image=%s prompt_chars=%d",
        config.model,
        bool(request.image_b64),
        len(request.prompt),
    )
    try:
        body = post_json(
            url,
            payload,
            headers={"Authorization": "Bearer " + config.api_key},
            timeout=config.timeout,
        )
    except HttpResponseError as exc:
        raise LlmResponseError(exc.status, exc.body) from exc
    except HttpError as exc:
        raise LlmError(str(exc)) from exc
    return _extract_content(body)
