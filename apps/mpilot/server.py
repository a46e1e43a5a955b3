from mpilot.api.app import create_app
from mpilot.log import configure_logging
from mpilot.runtime import build_services
from mpilot.settings import load_settings

SETTINGS = load_settings()
configure_logging(SETTINGS.log_level)

app = create_app(build_services(SETTINGS))
