"""
Queue consumer entrypoint

Run with: python -m dmarc_analyzer.consumer
"""
import logging
import signal
import sys
import threading

from dmarc_analyzer.config import get_settings
from dmarc_analyzer.database import SessionLocal, init_db
from dmarc_analyzer.logging_config import setup_logging
from dmarc_analyzer.pipeline import build_queue_consumer

logger = logging.getLogger(__name__)


def install_signal_handlers(stop_event: threading.Event) -> None:
    """Set stop_event on SIGINT/SIGTERM so the loop exits after the current batch"""

    def _handle(signum, frame):
        logger.info(f"Received signal {signum}, shutting down after current batch")
        stop_event.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def main() -> int:
    settings = get_settings()
    setup_logging(
        log_level=settings.log_level,
        log_dir=settings.log_dir or None,
        app_name="dmarc-consumer",
        enable_json=settings.log_json,
    )

    if not settings.sqs_queue_url:
        logger.error("SQS_QUEUE_URL is not configured")
        return 1

    init_db()

    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    db = SessionLocal()
    try:
        build_queue_consumer(db, settings).run(stop_event)
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
