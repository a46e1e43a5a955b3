import argparse
import json
from pathlib import Path

import uvicorn

from shared.errors import AdbError, PilotError

from mpilot.api import create_app
from mpilot.log import configure_logging
from mpilot.runtime import build_services
from mpilot.settings import load_settings


EXIT_COMMANDS = ("exit", "quit", "q")


def build_parser():
    parser = argparse.ArgumentParser(description="LLM-driven Android automation over adb")
    parser.add_argument("--config", default=None, help="Path to config.json")
    parser.add_argument("--adb", dest="adb_path", default=None, help="Path to adb")
    parser.add_argument("--device", default=None, help="ADB device id")
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("devices", help="List connected devices")

    run_parser = subparsers.add_parser("run", help="Run one goal to completion")
    run_parser.add_argument("--goal", required=True, help="Natural-language goal")
    run_parser.add_argument(
        "--max-iterations", type=int, default=None, help="Iteration cap (default: config)"
    )
    run_parser.add_argument("--model", default=None, help="LLM model (default: config)")
    run_parser.add_argument(
        "--api-key", default=None, help="LLM API key (or set LLM_API_KEY)"
    )
    run_parser.add_argument("--output", default=None, help="Write task result JSON to file")

    interactive_parser = subparsers.add_parser(
        "interactive", help="Prompt for goals and run them one after another"
    )
    interactive_parser.add_argument(
        "--max-iterations", type=int, default=None, help="Iteration cap (default: config)"
    )
    interactive_parser.add_argument("--model", default=None, help="LLM model (default: config)")
    interactive_parser.add_argument("--api-key", default=None, help="LLM API key")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP/WebSocket control server")
    serve_parser.add_argument("--host", default=None, help="Bind host (default: config)")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port (default: config)")

    return parser


def _load(args):
    try:
        settings = load_settings(args.config)
    except FileNotFoundError as exc:
        raise AdbError(str(exc)) from exc
    updates = {}
    if args.adb_path:
        updates["adb_path"] = args.adb_path
    if args.device:
        updates["device_id"] = args.device
    if args.log_level:
        updates["log_level"] = args.log_level
    if updates:
        settings = settings.model_copy(update=updates)
    return settings


def _dump(data) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def handle_devices(settings, args):
    services = build_services(settings)
    devices = [device.to_dict() for device in services.driver.list_devices()]
    print(_dump(devices))
    return 0


def handle_run(settings, args):
    services = build_services(
        settings,
        max_iterations=args.max_iterations,
        model=args.model,
        api_key=args.api_key,
    )
    result = services.orchestrator.run_task(args.goal, settings.device_id)
    output_text = _dump(result.to_dict())
    if args.output:
        Path(args.output).write_text(output_text, encoding="utf-8")
    print(output_text)
    return 0 if result.success else 2


def handle_interactive(settings, args, read=input):
    services = build_services(
        settings,
        max_iterations=args.max_iterations,
        model=args.model,
        api_key=args.api_key,
    )
    print("Enter a goal (or 'exit'):")
    while True:
        try:
            goal = read("> ").strip()
        except EOFError:
            break
        if not goal:
            continue
        if goal.lower() in EXIT_COMMANDS:
            break
        try:
            result = services.orchestrator.run_task(goal, settings.device_id)
        except KeyboardInterrupt:
            print("interrupted")
            continue
        print("{}: {} {}".format(result.outcome.value, result.summary, result.message or result.error or ""))
    return 0


def handle_serve(settings, args):
    app = create_app(build_services(settings))
    uvicorn.run(
        app,
        host=args.host or settings.server.host,
        port=args.port or settings.server.port,
        log_level=settings.log_level.lower(),
    )
    return 0


HANDLERS = {
    "devices": handle_devices,
    "run": handle_run,
    "interactive": handle_interactive,
    "serve": handle_serve,
}


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = _load(args)
    configure_logging(settings.log_level)
    handler = HANDLERS.get(args.command)
    if handler is None:
        raise PilotError("unknown command")
    return handler(settings, args)
