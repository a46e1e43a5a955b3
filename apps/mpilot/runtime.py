from dataclasses import dataclass
from typing import Optional

from infra.adb import AdbDriver

from mpilot.domains.act import StepExecutor
from mpilot.domains.decide import LlmPlanner
from mpilot.domains.ports import Planner
from mpilot.domains.run import EventBroadcaster, LoggingSink, Orchestrator
from mpilot.settings import PilotSettings, build_llm_config, build_loop_config


@dataclass
class Services:
    settings: PilotSettings
    driver: AdbDriver
    orchestrator: Orchestrator
    events: EventBroadcaster


def build_services(
    settings: PilotSettings,
    *,
    planner: Optional[Planner] = None,
    max_iterations: Optional[int] = None,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
) -> Services:
    loop_config = build_loop_config(settings, max_iterations=max_iterations)
    driver = AdbDriver(
        adb_path=settings.adb_path,
        timeout=settings.loop.command_timeout,
        dump_timeout=settings.loop.dump_timeout,
        ime_id=settings.adb_ime_id,
    )
    if planner is None:
        planner = LlmPlanner(
            build_llm_config(settings, model=model, api_key=api_key),
            default_wait_after_ms=loop_config.default_wait_after_ms,
            default_backoff_ms=loop_config.default_backoff_ms,
        )
    broadcaster = EventBroadcaster()
    broadcaster.subscribe(LoggingSink().emit)
    executor = StepExecutor(
        driver,
        ime_id=settings.adb_ime_id,
        launch_settle_ms=loop_config.launch_settle_ms,
    )
    orchestrator = Orchestrator(
        driver, planner, config=loop_config, sink=broadcaster, executor=executor
    )
    return Services(settings, driver, orchestrator, broadcaster)
