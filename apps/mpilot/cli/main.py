import sys

from mpilot.cli.handlers import main as run_main
from shared.errors import PilotError


def main(argv=None):
    try:
        return run_main(argv)
    except PilotError as exc:
        print("error:", exc, file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
