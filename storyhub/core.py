import os
import asyncio
import redis.asyncio as aioredis
from prometheus_client import Counter, start_http_server
import logging

logger = logging.getLogger(__name__)

REDIS = None

METRICS_PORT = int(os.getenv('METRICS_PORT', '8001'))

STORY_CHUNKS_APPLIED = Counter(
    'story_chunks_applied_total', 'Story chunks written to a story and its tracker', ['flow', 'kind']
)
STORY_UPLOADS_COMPLETED = Counter(
    'story_uploads_completed_total', 'Stories finalized by their last chunk', ['flow']
)
STORY_CHUNKS_REJECTED = Counter(
    'story_chunks_rejected_total', 'Story chunks refused by the upload protocol', ['reason']
)
STORY_DRAFTS_REAPED = Counter(
    'story_drafts_reaped_total', 'Abandoned story drafts deleted by the reaper'
)


def init_metrics(port: int = METRICS_PORT):
    """Initialize Prometheus metrics server"""
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except Exception as e:
        logger.warning(f'Prometheus start failed: {e}')


async def redis_startup():
    """Connect to Redis; the service keeps running without it (rate limits fail open)."""
    global REDIS

    redis_url = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    max_retries = 3
    retry_delay = 3  # seconds

    for attempt in range(max_retries):
        try:
            logger.info(f"Attempting to connect to Redis: {redis_url} (attempt {attempt + 1}/{max_retries})")

            REDIS = aioredis.from_url(
                redis_url,
                decode_responses=False,
                max_connections=20,
                retry_on_timeout=True,
                health_check_interval=30,
                socket_connect_timeout=5,
                socket_timeout=5
            )

            await REDIS.ping()

            logger.info("Redis connected successfully")
            break

        except Exception as e:
            logger.warning(f'Redis startup attempt {attempt + 1} failed: {e}')
            if REDIS:
                try:
                    await REDIS.close()
                except Exception:
                    pass
                REDIS = None

            if attempt < max_retries - 1:
                logger.info(f"Retrying Redis connection in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error("Failed to connect to Redis after all retries")


async def shutdown_connections():
    """Gracefully shutdown all connections"""
    global REDIS
    logger.info("Shutting down connections...")

    if REDIS:
        try:
            await REDIS.close()
            logger.info("Redis connection closed")
        except Exception as e:
            logger.error(f"Error closing Redis connection: {e}")
        REDIS = None

    from .models import engine
    await engine.dispose()
    logger.info("Database engine disposed")
