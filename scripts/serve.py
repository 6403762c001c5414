#!/usr/bin/env python3
"""Serve the fetch-options / fetch-timetable JSON operations over HTTP.

Binds to TIMETABLE_SERVER_HOST:TIMETABLE_SERVER_PORT (127.0.0.1:8000).
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.timetable.config import get_config  # noqa: E402
from src.timetable.logging import get_logger, setup_logging  # noqa: E402
from src.timetable.server import make_server  # noqa: E402

logger = get_logger("serve")


if __name__ == "__main__":
    config = get_config()
    setup_logging(json_output=config.log_json, log_level=config.log_level)
    server = make_server(config.server_host, config.server_port)
    logger.info("server_listening", host=config.server_host, port=config.server_port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("server_stopped")
    finally:
        server.server_close()
