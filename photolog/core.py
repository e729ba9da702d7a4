import os
import asyncio
import logging
from functools import wraps
from typing import AsyncIterator

from prometheus_client import Counter, start_http_server
from redis.asyncio import BlockingConnectionPool, Redis

from .errors import InternalError

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
REDIS_MAX_CONNECTIONS = int(os.getenv('REDIS_MAX_CONNECTIONS', '10'))
REDIS_POOL_TIMEOUT = float(os.getenv('REDIS_POOL_TIMEOUT', '5'))
REDIS_HEALTH_CHECK_INTERVAL = int(os.getenv('REDIS_HEALTH_CHECK_INTERVAL', '30'))

REDIS_POOL = None


def async_wrapper(func):
    """Wrapper to run blocking work on the default executor"""
    @wraps(func)
    async def wrapper(*args, **kwargs):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, lambda: func(*args, **kwargs))
    return wrapper


POSTS_COMMITTED = Counter('photolog_posts_committed_total', 'Posts committed to a timeline')
POST_REJECTIONS = Counter('photolog_post_rejections_total', 'Post uploads aborted', ['reason'])
REGISTRATIONS = Counter('photolog_registrations_total', 'Users registered')


def init_metrics():
    """Initialize Prometheus metrics server"""
    port = int(os.getenv('METRICS_PORT', '8001'))
    if not port:
        return
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except Exception as e:
        logger.warning(f'Prometheus start failed: {e}')


def new_pool(url: str = REDIS_URL) -> BlockingConnectionPool:
    # Exhaustion blocks the caller up to REDIS_POOL_TIMEOUT seconds
    return BlockingConnectionPool.from_url(
        url,
        max_connections=REDIS_MAX_CONNECTIONS,
        timeout=REDIS_POOL_TIMEOUT,
        health_check_interval=REDIS_HEALTH_CHECK_INTERVAL,
        socket_connect_timeout=5,
        socket_timeout=5,
    )


async def redis_startup():
    """Create the Redis connection pool and check the server answers"""
    global REDIS_POOL

    max_retries = 3
    retry_delay = 3  # seconds

    for attempt in range(max_retries):
        pool = new_pool(REDIS_URL)
        try:
            logger.info(f"Attempting to connect to Redis: {REDIS_URL} (attempt {attempt + 1}/{max_retries})")
            client = Redis(connection_pool=pool)
            try:
                await client.ping()
            finally:
                await client.aclose()
            REDIS_POOL = pool
            logger.info("Redis connected successfully")
            return
        except Exception as e:
            logger.warning(f'Redis startup attempt {attempt + 1} failed: {e}')
            await pool.disconnect()
            if attempt < max_retries - 1:
                logger.info(f"Retrying Redis connection in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error("Failed to connect to Redis after all retries")


async def shutdown_connections():
    """Gracefully shutdown the Redis pool"""
    global REDIS_POOL

    if REDIS_POOL:
        try:
            await REDIS_POOL.disconnect()
            logger.info("Redis connection pool closed")
        except Exception as e:
            logger.error(f"Error closing Redis connection pool: {e}")
        REDIS_POOL = None


async def get_redis() -> AsyncIterator[Redis]:
    """Per-request Redis client, released on every path"""
    if REDIS_POOL is None:
        logger.error('Redis pool is not initialized')
        raise InternalError()
    conn = Redis(connection_pool=REDIS_POOL)
    try:
        yield conn
    finally:
        await conn.aclose()
