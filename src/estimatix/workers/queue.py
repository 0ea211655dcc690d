"""
Redis Queue (RQ) for recording processing, with a synchronous fallback.
"""
import logging
from typing import Any, Callable

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue

from estimatix.domain.models.config import QueueConfig

logger = logging.getLogger(__name__)

PROCESS_RECORDING_TASK = "estimatix.workers.tasks.process_recording"


class RecordingQueue:
    """
    Enqueues recording jobs in Redis.

    When the queue is disabled or Redis is unreachable, jobs run inline
    through process_sync.
    """

    def __init__(self, config: QueueConfig, process_sync: Callable[[str], Any]):
        self.config = config
        self.process_sync = process_sync
        self._queue: Queue | None = None

        if config.enabled:
            try:
                redis_conn = Redis.from_url(config.redis_url)
                redis_conn.ping()
                self._queue = Queue(config.queue_name, connection=redis_conn)
                logger.info(f"Connected to Redis: {config.redis_url}")
            except (RedisError, ValueError) as e:
                logger.warning(f"Redis connection failed: {e}. Recordings will be processed synchronously.")

    @property
    def is_async(self) -> bool:
        return self._queue is not None

    def enqueue_recording(self, upload_id: str) -> bool:
        """
        Args:
            upload_id: Upload to transcribe and parse

        Returns:
            True if enqueued, False if processed synchronously
        """
        if self._queue is not None:
            try:
                self._queue.enqueue(PROCESS_RECORDING_TASK, upload_id, job_timeout=self.config.job_timeout)
                logger.info(f"Recording {upload_id} enqueued")
                return True
            except RedisError as e:
                logger.warning(f"Failed to enqueue recording {upload_id}: {e}")

        logger.info(f"Processing recording {upload_id} synchronously")
        self.process_sync(upload_id)
        return False
