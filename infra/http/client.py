import http.client
import json
import logging
import urllib.error
import urllib.request
from typing import Dict, Optional


logger = logging.getLogger("infra.http")


class HttpError(Exception):
    """Transport failure: DNS, refused or reset connection, timeout."""


class HttpResponseError(HttpError):
    """The server answered with a non-2xx status."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__("status {}: {}".format(status, body[:300]))


def post_json(
    url: str,
    payload: dict,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 60,
) -> str:
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    merged = {"Content-Type": "application/json", **(headers or {})}
    request = urllib.request.Request(url, data=body, headers=merged, method="POST")
    logger.debug("POST %s (%d bytes)", url, len(body))
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            return response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        raise HttpResponseError(exc.code, exc.read().decode("utf-8", errors="replace")) from exc
    except (OSError, http.client.HTTPException) as exc:
        raise HttpError("POST {} failed: {}".format(url, exc)) from exc
