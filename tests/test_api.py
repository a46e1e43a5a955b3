import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from conftest import DEVICE, FakeDriver, FakePlanner

from mpilot.api import create_app
from mpilot.domains.run import EventBroadcaster, Orchestrator, TaskEvent
from mpilot.runtime import Services
from mpilot.settings import LoopConfig, PilotSettings


def _services(driver=None, planner=None, **settings):
    driver = driver or FakeDriver()
    events = EventBroadcaster()
    orchestrator = Orchestrator(
        driver,
        planner or FakePlanner([{"steps": [{"id": "home", "cmd": "input keyevent 3"}]}]),
        config=LoopConfig(inter_iteration_delay_ms=0, default_wait_after_ms=0),
        sink=events,
        sleep=lambda seconds: None,
    )
    return Services(PilotSettings(**settings), driver, orchestrator, events)


@pytest.fixture
def services():
    return _services()


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


def test_list_devices(client):
    response = client.get("/api/devices")

    assert response.status_code == 200
    assert response.json() == [
        {
            "serial": DEVICE,
            "model": "Pixel 7",
            "android_version": "14",
            "screen_size": {"width": 1080, "height": 2400},
        }
    ]


def test_create_and_inspect_task(client, services):
    response = client.post("/api/tasks", json={"goal": "go home"})

    assert response.status_code == 202
    task_id = response.json()["task_id"]
    services.orchestrator.wait_task(task_id, timeout=5)

    detail = client.get("/api/tasks/{}".format(task_id)).json()
    assert detail["status"] == "completed"
    assert detail["success"] is True
    assert detail["steps"][0]["step_id"] == "home"
    assert [task["task_id"] for task in client.get("/api/tasks").json()] == [task_id]


def test_blank_goal_is_rejected(client):
    assert client.post("/api/tasks", json={"goal": ""}).status_code == 422
    assert client.post("/api/tasks", json={"goal": "   "}).status_code == 422


def test_unknown_task(client):
    assert client.get("/api/tasks/nope").status_code == 404
    assert client.post("/api/tasks/nope/stop").status_code == 404


def test_control_of_finished_task_conflicts(client, services):
    result = services.orchestrator.run_task("go home")

    response = client.post("/api/tasks/{}/pause".format(result.task_id))

    assert response.status_code == 409


def test_screenshot(client):
    response = client.get("/api/screenshot")

    assert response.status_code == 200
    assert response.json() == {"device_id": DEVICE, "image": "iVBORw0KGgo=", "format": "png"}


def test_screenshot_without_device():
    driver = FakeDriver()
    driver.serials = []
    client = TestClient(create_app(_services(driver)))

    assert client.get("/api/screenshot").status_code == 503


def test_event_stream(client, services):
    with client.websocket_connect("/ws/events") as websocket:
        websocket.send_json({"type": "ping"})
        assert websocket.receive_json() == {"type": "pong"}

        services.events.emit(TaskEvent("log", "task_1", {"message": "hello"}, timestamp=1.0))

        assert websocket.receive_json() == {
            "type": "log",
            "task_id": "task_1",
            "payload": {"message": "hello"},
            "timestamp": 1.0,
        }


def test_event_stream_requires_token():
    services = _services(server={"ws_token": "secret"})
    client = TestClient(create_app(services))

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/events") as websocket:
            websocket.receive_json()

    with client.websocket_connect("/ws/events?token=secret") as websocket:
        websocket.send_json({"type": "ping"})
        assert websocket.receive_json() == {"type": "pong"}
