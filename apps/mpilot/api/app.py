import logging
from typing import List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from infra.ws import JsonWsServer
from shared.errors import AdbError

from mpilot.runtime import Services
from mpilot.api.schemas import (
    DeviceInfo,
    ScreenshotResponse,
    TaskControlResponse,
    TaskCreated,
    TaskDetail,
    TaskRequest,
    TaskSummary,
)


logger = logging.getLogger("mpilot.api")


def create_router(services: Services, ws_server: Optional[JsonWsServer] = None) -> APIRouter:
    router = APIRouter()
    orchestrator = services.orchestrator
    driver = services.driver
    server_settings = services.settings.server
    ws_server = ws_server or JsonWsServer(
        token=server_settings.ws_token,
        trace=server_settings.ws_trace,
        logger=logging.getLogger("mpilot.ws"),
    )

    def _control(task_id: str, action: str) -> TaskControlResponse:
        task = orchestrator.get_task(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="task not found")
        ok = getattr(orchestrator, "{}_task".format(action))(task_id)
        status = (orchestrator.get_task(task_id) or task)["status"]
        if not ok:
            raise HTTPException(
                status_code=409,
                detail="cannot {} task in status {}".format(action, status),
            )
        return TaskControlResponse(task_id=task_id, ok=ok, status=status)

    @router.get("/api/devices", response_model=List[DeviceInfo])
    def list_devices():
        return [device.to_dict() for device in driver.list_devices()]

    @router.post("/api/tasks", response_model=TaskCreated, status_code=202)
    def create_task(payload: TaskRequest):
        try:
            task_id = orchestrator.start_task(payload.goal, payload.device_id)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return TaskCreated(task_id=task_id)

    @router.get("/api/tasks", response_model=List[TaskSummary])
    def list_tasks():
        return orchestrator.list_tasks()

    @router.get("/api/tasks/{task_id}", response_model=TaskDetail)
    def get_task(task_id: str):
        task = orchestrator.get_task(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="task not found")
        return task

    @router.post("/api/tasks/{task_id}/pause", response_model=TaskControlResponse)
    def pause_task(task_id: str):
        return _control(task_id, "pause")

    @router.post("/api/tasks/{task_id}/resume", response_model=TaskControlResponse)
    def resume_task(task_id: str):
        return _control(task_id, "resume")

    @router.post("/api/tasks/{task_id}/stop", response_model=TaskControlResponse)
    def stop_task(task_id: str):
        return _control(task_id, "stop")

    @router.get("/api/screenshot", response_model=ScreenshotResponse)
    def screenshot(device: Optional[str] = Query(default=None)):
        try:
            device_id = orchestrator.select_device(device)
        except AdbError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        image = driver.capture_screenshot(device_id)
        if not image:
            raise HTTPException(status_code=502, detail="screenshot failed")
        return ScreenshotResponse(device_id=device_id, image=image)

    @router.websocket("/ws/events")
    async def events_ws(websocket: WebSocket):
        await ws_server.stream(websocket, services.events.subscribe)

    return router


def create_app(services: Services) -> FastAPI:
    app = FastAPI(title="mobile-pilot")
    origins = services.settings.server.cors_origins_list
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.include_router(create_router(services))
    app.state.services = services
    return app
