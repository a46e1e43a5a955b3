import io
import json
import urllib.error
from unittest.mock import MagicMock

import pytest

from infra.http import HttpError, HttpResponseError, post_json
from infra.http import client


def test_post_json_sends_utf8_body(monkeypatch):
    response = MagicMock()
    response.__enter__.return_value.read.return_value = b'{"ok": true}'
    urlopen = MagicMock(return_value=response)
    monkeypatch.setattr(client.urllib.request, "urlopen", urlopen)

    assert post_json("http://llm.test/chat", {"goal": "打开设置"}, headers={"X-Key": "k"}, timeout=5) == '{"ok": true}'
    request = urlopen.call_args[0][0]
    assert json.loads(request.data.decode("utf-8")) == {"goal": "打开设置"}
    assert request.get_header("X-key") == "k"
    assert urlopen.call_args[1]["timeout"] == 5


def test_error_status_keeps_body(monkeypatch):
    error = urllib.error.HTTPError("http://llm.test/chat", 401, "Unauthorized", {}, io.BytesIO(b"bad key"))
    monkeypatch.setattr(client.urllib.request, "urlopen", MagicMock(side_effect=error))

    with pytest.raises(HttpResponseError) as info:
        post_json("http://llm.test/chat", {})
    assert info.value.status == 401
    assert info.value.body == "bad key"


@pytest.mark.parametrize(
    "failure",
    [
        urllib.error.URLError("name resolution failed"),
        ConnectionResetError("connection reset by peer"),
        TimeoutError("timed out"),
    ],
)
def test_transport_failures_become_http_errors(monkeypatch, failure):
    monkeypatch.setattr(client.urllib.request, "urlopen", MagicMock(side_effect=failure))

    with pytest.raises(HttpError, match="POST http://llm.test/chat failed"):
        post_json("http://llm.test/chat", {})
