"""Application entry point for the Agriquiz service."""

from __future__ import annotations

import socket

from agriquiz.constants.about import APP_NAME, APP_VERSION
from agriquiz.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from agriquiz.constants.quiz_constants import RESULTS_FILE_PATH
from agriquiz.core.quiz_manager import QuizManager
from agriquiz.server.api_server import start_api_server
from agriquiz.utils.logging_config import configure_logging


def _determine_service_url(port: int) -> str:
    """Best-effort determination of the local IP for the client-facing URL."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            ip_address = sock.getsockname()[0]
    except OSError:
        ip_address = "127.0.0.1"
    return f"http://{ip_address}:{port}/"


def main() -> None:
    """Initialize logging and serve the API until interrupted."""
    logger = configure_logging()
    logger.info("Starting %s %s", APP_NAME, APP_VERSION)

    quiz_manager = QuizManager(results_path=RESULTS_FILE_PATH)
    server_thread = start_api_server(quiz_manager=quiz_manager, host=DEFAULT_HOST, port=DEFAULT_PORT)
    logger.info("API available at %s", _determine_service_url(DEFAULT_PORT))

    try:
        server_thread.join()
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
