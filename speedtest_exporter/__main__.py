import logging
import sys

import uvicorn

from .app import create_app
from .config import load_settings
from .errors import ConfigError
from .logging import setup_logging

SERVICE = "speedtest-exporter"

def main() -> int:
    try:
        settings = load_settings()
    except ConfigError as e:
        setup_logging(SERVICE)
        logging.getLogger(__name__).error(str(e), extra={"event": "config.error"})
        return 1

    setup_logging(SERVICE, settings.log_level)
    app = create_app(settings)
    # uvicorn installs SIGINT/SIGTERM handlers that run the shutdown event
    uvicorn.run(
        app,
        host=settings.bind_host,
        port=settings.listen_port,
        log_config=None,
        access_log=False,
        timeout_keep_alive=60,
    )
    return 0

if __name__ == "__main__":
    sys.exit(main())
