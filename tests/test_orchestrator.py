import threading

import pytest

from conftest import DEVICE, FakeDriver, FakePlanner
from infra.adb import ReadyState, ShellResult

from mpilot.domains.run import EventBroadcaster, Orchestrator
from mpilot.settings import LoopConfig


CONFIG = LoopConfig(inter_iteration_delay_ms=0, default_wait_after_ms=0)


def _orchestrator(driver, planner, events=None):
    return Orchestrator(driver, planner, config=CONFIG, sink=events, sleep=lambda seconds: None)


def _collect(events):
    received = []
    events.subscribe(received.append)
    return received


def test_run_task_reports_lifecycle_events(driver):
    events = EventBroadcaster()
    received = _collect(events)
    orchestrator = _orchestrator(driver, FakePlanner([{"steps": [{"cmd": "input keyevent 3"}]}]), events)

    result = orchestrator.run_task("go home")

    assert result.success is True
    types = [event.type for event in received]
    assert types[0] == "task_started"
    assert types[-2:] == ["task_status", "task_completed"]
    task = orchestrator.get_task(result.task_id)
    assert task["status"] == "completed"
    assert task["device_id"] == DEVICE
    assert task["steps"][0]["command"] == "input keyevent 3"


def test_task_ids_are_timestamped(driver):
    orchestrator = _orchestrator(driver, FakePlanner())

    result = orchestrator.run_task("noop")

    assert result.task_id.startswith("task_")
    assert len(result.task_id.split("_")) == 4


def test_empty_goal_is_rejected(driver):
    with pytest.raises(ValueError):
        _orchestrator(driver, FakePlanner()).start_task("   ")


def test_missing_device_fails_task():
    driver = FakeDriver()
    driver.serials = []
    events = EventBroadcaster()
    received = _collect(events)

    result = _orchestrator(driver, FakePlanner(), events).run_task("go home")

    assert result.success is False
    assert result.error == "no adb devices found"
    assert received[-1].type == "task_failed"


def test_locked_device_fails_task():
    driver = FakeDriver()
    driver.ready = ReadyState(screen_on=False, unlocked=False)

    result = _orchestrator(driver, FakePlanner()).run_task("go home")

    assert result.outcome.value == "failed"
    assert "screen off, screen locked" in result.error


def test_preferred_device_falls_back_to_first(driver):
    driver.serials = ["a", "b"]
    orchestrator = _orchestrator(driver, FakePlanner())

    assert orchestrator.select_device("b") == "b"
    assert orchestrator.select_device("zzz") == "a"


class BlockingPlanner(FakePlanner):
    def __init__(self, plans):
        super().__init__(plans)
        self.entered = threading.Event()
        self.release = threading.Event()

    def request_initial_plan(self, *args):
        self.entered.set()
        self.release.wait(5)
        return super().request_initial_plan(*args)


def test_pause_resume_stop_running_task(driver):
    planner = BlockingPlanner([{"steps": [{"cmd": "input keyevent 3"}]}])
    orchestrator = _orchestrator(driver, planner)

    task_id = orchestrator.start_task("go home")
    assert planner.entered.wait(5)

    assert orchestrator.pause_task(task_id) is True
    assert orchestrator.get_task(task_id)["status"] == "paused"
    assert orchestrator.resume_task(task_id) is True
    assert orchestrator.stop_task(task_id) is True
    planner.release.set()

    result = orchestrator.wait_task(task_id, timeout=5)
    assert result.outcome.value == "stopped"
    assert result.success is False
    assert result.summary["total"] == 1
    assert orchestrator.stop_task(task_id) is False


def test_control_of_unknown_task(driver):
    orchestrator = _orchestrator(driver, FakePlanner())

    assert orchestrator.pause_task("nope") is False
    assert orchestrator.get_task("nope") is None
    assert orchestrator.wait_task("nope") is None


def test_list_tasks_newest_first(driver):
    orchestrator = _orchestrator(driver, FakePlanner())
    first = orchestrator.run_task("one")
    second = orchestrator.run_task("two")

    listed = [task["task_id"] for task in orchestrator.list_tasks()]

    assert set(listed) == {first.task_id, second.task_id}
    assert "steps" not in orchestrator.list_tasks()[0]


def test_finish_event_carries_the_result(driver):
    events = EventBroadcaster()
    received = _collect(events)
    orchestrator = _orchestrator(driver, FakePlanner([{"steps": [{"id": "home", "cmd": "input keyevent 3"}]}]), events)

    result = orchestrator.run_task("go home")

    finished = received[-1]
    assert finished.type == "task_completed"
    assert finished.task_id == result.task_id
    assert finished.payload["outcome"] == "completed"
    assert finished.payload["summary"] == {"total": 1, "succeeded": 1, "failed": 0, "iterations": 2}
    assert finished.payload["steps"][0]["step_id"] == "home"
    assert "task_id" not in finished.payload



def test_background_task_emits_failure(driver):
    events = EventBroadcaster()
    received = _collect(events)
    driver.responses["input keyevent 4"] = ShellResult(False, "", "error: device offline", 1)
    planner = FakePlanner([{"steps": [{"id": "back", "cmd": "input keyevent 4", "on_fail": "abort"}]}])
    orchestrator = _orchestrator(driver, planner, events)

    task_id = orchestrator.start_task("go back")
    result = orchestrator.wait_task(task_id, timeout=5)

    assert result.outcome.value == "aborted"
    assert received[-1].type == "task_failed"
    assert received[-1].payload["summary"]["failed"] == 1


def test_finished_tasks_are_evicted_past_the_limit(driver):
    orchestrator = Orchestrator(
        driver, FakePlanner(), config=CONFIG, sleep=lambda seconds: None, max_finished=2
    )
    ids = [orchestrator.run_task("goal {}".format(index)).task_id for index in range(4)]

    assert orchestrator.get_task(ids[0]) is None
    assert orchestrator.get_task(ids[1]) is None
    assert orchestrator.get_task(ids[3])["status"] == "completed"
    assert len(orchestrator.list_tasks()) == 2


def test_finished_task_releases_its_control_state(driver):
    orchestrator = _orchestrator(driver, FakePlanner())

    result = orchestrator.run_task("noop")

    assert orchestrator._get_record(result.task_id).state is None
    assert orchestrator.pause_task(result.task_id) is False
    assert orchestrator.resume_task(result.task_id) is False
