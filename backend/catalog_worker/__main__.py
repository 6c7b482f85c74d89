"""Run the RQ worker that executes queued watch-history imports."""
from __future__ import annotations

import logging
import os

from rq import SimpleWorker, Worker

from backend.catalog_api.services.queue import JobQueueService
from backend.catalog_api.settings import CatalogSettings

logger = logging.getLogger(__name__)


def main() -> None:
    """Consume the import queue until the process is stopped."""

    settings = CatalogSettings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    queue_service = JobQueueService(settings)
    if not queue_service.ping():
        logger.warning("Redis at %s did not answer; the worker will keep retrying", settings.redis_url)

    # os.fork is unavailable on Windows
    worker_class = SimpleWorker if os.name == "nt" else Worker
    worker = worker_class(
        [queue_service.queue],
        connection=queue_service.connection,
        name=settings.queue_worker_name,
    )
    logger.info("Listening on queue %s as %s", settings.redis_queue_name, settings.queue_worker_name)
    worker.work(with_scheduler=False)


if __name__ == "__main__":  # pragma: no cover - manual entrypoint
    main()
