"""정산 컨슈머 단독 실행 엔트리 포인트.

API 프로세스에서 STUDIO_RECONCILIATION_CONSUMER=false 로 끄고 별도 프로세스로 돌릴 때 사용한다.
"""

from __future__ import annotations

import logging
import signal

from common.logger import setup_logger
from common.mongo.client import get_database

from .event_handlers.reconciliation_handler import run_reconciliation_consumer


logger = logging.getLogger(__name__)


def main() -> None:
    setup_logger(name="studio-reconciliation-consumer")

    stop_flag = [False]

    def _signal_handler(signum, frame) -> None:  # type: ignore[unused-argument]
        logger.info("received signal %s, shutting down reconciliation consumer...", signum)
        stop_flag[0] = True

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    run_reconciliation_consumer(stop_flag, get_database())


if __name__ == "__main__":  # pragma: no cover
    main()
