"""
Celery Tasks
Periodic maintenance for outlet load throttling.

Tasks are synchronous Celery entry points around async service calls.
Each run gets its own engine with no connection pooling, since worker
processes do not share the API's event loop.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from campus_eats.celery_worker import celery_app
from campus_eats.core.config import get_settings
from campus_eats.database import build_session_maker
from campus_eats.services.chill import ChillPeriodThrottle
from campus_eats.services.notifications import MockRealtimeNotifier
from campus_eats.services.orders import OrderLifecycleManager

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _with_session(work: Callable[[AsyncSession], Awaitable[T]]) -> T:
    settings = get_settings()
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    try:
        async with build_session_maker(engine)() as session:
            return await work(session)
    finally:
        await engine.dispose()


def run_in_session(work: Callable[[AsyncSession], Awaitable[T]]) -> T:
    """Run an async unit of work against a fresh session."""
    return asyncio.run(_with_session(work))


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def sweep_expired_chill_periods(self) -> dict:
    """
    Clear chill flags whose expiry has passed.

    Readers already ignore expired chill periods; this keeps the stored
    flag honest for dashboards and queries.
    """
    task_id = self.request.id
    start_time = time.time()

    resumed = run_in_session(lambda db: ChillPeriodThrottle(db).sweep_expired())

    elapsed = round(time.time() - start_time, 3)
    logger.info(f"🧊 Task {task_id}: chill sweep resumed {resumed} outlet(s) in {elapsed}s")

    return {
        'task_id': task_id,
        'resumed_outlets': resumed,
        'processing_time_seconds': elapsed,
    }


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def reconcile_active_order_counts(self) -> dict:
    """Recompute every outlet's active order count from its orders."""
    task_id = self.request.id
    start_time = time.time()

    # Reconciliation never changes order status, so nothing is pushed
    corrected = run_in_session(
        lambda db: OrderLifecycleManager(db, notifier=MockRealtimeNotifier()).reconcile_active_counts()
    )

    elapsed = round(time.time() - start_time, 3)
    if corrected:
        logger.warning(f"⚠️ Task {task_id}: corrected {corrected} outlet counter(s) in {elapsed}s")
    else:
        logger.info(f"✅ Task {task_id}: all outlet counters consistent ({elapsed}s)")

    return {
        'task_id': task_id,
        'corrected_outlets': corrected,
        'processing_time_seconds': elapsed,
    }


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now(timezone.utc).isoformat()
    }
