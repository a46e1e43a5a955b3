import json
from unittest.mock import MagicMock

import pytest

from infra.http import HttpError, HttpResponseError
from infra.llm import ChatRequest, LlmConfig, LlmError, LlmResponseError, call_llm_chat
from infra.llm import chat


def _reply(content):
    return json.dumps({"choices": [{"message": {"content": content}}]})


def test_messages_carry_image():
    messages = chat.build_messages(ChatRequest("sys", "look", "aGk="))

    assert messages[0] == {"role": "system", "content": "sys"}
    assert messages[1]["content"][1]["image_url"]["url"] == "data:image/png;base64,aGk="


def test_text_only_messages():
    assert chat.build_messages(ChatRequest("sys", "hi"))[1]["content"] == "hi"


def test_call_chat_posts_payload(monkeypatch):
    post = MagicMock(return_value=_reply("done"))
    monkeypatch.setattr(chat, "post_json", post)
    config = LlmConfig(provider="doubao", api_key="k", model="m", base_url="https://ark.test/v1/chat/completions")

    assert call_llm_chat(config, ChatRequest("sys", "hi")) == "done"
    url, payload = post.call_args[0]
    assert url == "https://ark.test/v1/chat/completions"
    assert payload["model"] == "m"
    assert "temperature" not in payload
    assert post.call_args[1]["headers"] == {"Authorization": "Bearer k"}


def test_openai_uses_default_endpoint(monkeypatch):
    post = MagicMock(return_value=_reply(None))
    monkeypatch.setattr(chat, "post_json", post)

    assert call_llm_chat(LlmConfig(api_key="k", model="m", temperature=0.2), ChatRequest("s", "p")) == ""
    url, payload = post.call_args[0]
    assert url == chat.OPENAI_CHAT_URL
    assert payload["temperature"] == 0.2


def test_compat_providers_need_base_url():
    with pytest.raises(LlmError, match="base url"):
        call_llm_chat(LlmConfig(provider="deepseek", api_key="k", model="m"), ChatRequest("s", "p"))


def test_unknown_provider():
    with pytest.raises(LlmError, match="unknown LLM provider"):
        call_llm_chat(LlmConfig(provider="carrier-pigeon", model="m"), ChatRequest("s", "p"))


def test_missing_key_and_model():
    with pytest.raises(LlmError, match="model"):
        call_llm_chat(LlmConfig(api_key="k"), ChatRequest("s", "p"))
    with pytest.raises(LlmError, match="API key"):
        call_llm_chat(LlmConfig(model="m"), ChatRequest("s", "p"))


def test_unexpected_response_is_an_llm_error(monkeypatch):
    monkeypatch.setattr(chat, "post_json", MagicMock(return_value="<html>"))

    with pytest.raises(LlmError, match="unexpected LLM response"):
        call_llm_chat(LlmConfig(api_key="k", model="m"), ChatRequest("s", "p"))


def test_http_failures_become_llm_errors(monkeypatch):
    monkeypatch.setattr(chat, "post_json", MagicMock(side_effect=HttpResponseError(429, "slow down")))
    with pytest.raises(LlmResponseError) as info:
        call_llm_chat(LlmConfig(api_key="k", model="m"), ChatRequest("s", "p"))
    assert info.value.status == 429

    monkeypatch.setattr(chat, "post_json", MagicMock(side_effect=HttpError("refused")))
    with pytest.raises(LlmError, match="refused"):
        call_llm_chat(LlmConfig(api_key="k", model="m"), ChatRequest("s", "p"))
