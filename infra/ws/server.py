import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

from fastapi import WebSocket, WebSocketDisconnect


JsonHandler = Callable[[dict], Awaitable[None]]
Publish = Callable[[Any], None]
Subscribe = Callable[[Publish], Callable[[], None]]


class JsonWsServer:
    """Pushes JSON events from worker threads to a websocket client."""

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        trace: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._token = token
        self._trace = trace
        self._logger = logger or logging.getLogger("infra.ws.server")

    async def authorize(self, websocket: WebSocket) -> bool:
        if self._token:
            token = websocket.query_params.get("token")
            if token != self._token:
                await websocket.close(code=1008)
                return False
        await websocket.accept()
        return True

    async def stream(
        self,
        websocket: WebSocket,
        subscribe: Subscribe,
        *,
        on_message: Optional[JsonHandler] = None,
    ) -> None:
        if not await self.authorize(websocket):
            return
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def publish(event: Any) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, event)

        unsubscribe = subscribe(publish)
        sender = asyncio.ensure_future(self._send_loop(websocket, queue))
        receiver = asyncio.ensure_future(self._receive_loop(websocket, on_message))
        try:
            done, pending = await asyncio.wait(
                {sender, receiver}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()
            for task in done:
                exc = task.exception()
                if exc and not isinstance(exc, WebSocketDisconnect):
                    self._logger.warning("ws stream closed: %s", exc)
        finally:
            unsubscribe()

    async def _send_loop(self, websocket: WebSocket, queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            payload = event.to_dict() if hasattr(event, "to_dict") else event
            self._log("tx", payload)
            await websocket.send_text(json.dumps(payload, ensure_ascii=False))

    async def _receive_loop(
        self, websocket: WebSocket, on_message: Optional[JsonHandler]
    ) -> None:
        while True:
            raw = await websocket.receive_text()
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if not isinstance(payload, dict):
                continue
            self._log("rx", payload)
            if payload.get("type") == "ping":
                await websocket.send_text(json.dumps({"type": "pong"}))
                continue
            if on_message:
                try:
                    await on_message(payload)
                except Exception:
                    self._logger.exception("ws handler error")

    def _log(self, direction: str, payload: dict) -> None:
        if not self._trace:
            return
        self._logger.info("ws %s %s", direction, _summarize(payload))


def _summarize(payload: dict) -> str:
    if not isinstance(payload, dict):
        return str(payload)
    keys = ("type", "task_id", "device_id")
    summary = {key: payload.get(key) for key in keys if payload.get(key)}
    if not summary:
        summary = {"keys": list(payload.keys())[:6]}
    return json.dumps(summary, ensure_ascii=True)
