"""
EduPortal Billing - Celery Tasks

Celery wrappers around the async reconciliation passes.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict

from celery import shared_task
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.config import settings
from app.tasks.scheduled_tasks import expire_stale_orders, reconcile_expired_subscriptions

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async functions in Celery tasks."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _with_session(job: Callable[[AsyncSession], Awaitable[Dict[str, Any]]]) -> Dict[str, Any]:
    """Run a job on a throwaway engine; pooled connections cannot cross event loops."""
    engine = create_async_engine(settings.database_url_async, poolclass=NullPool)
    try:
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        async with session_factory() as db:
            return await job(db)
    finally:
        await engine.dispose()


# ===========================================
# SUBSCRIPTION TASKS
# ===========================================

@shared_task(name='app.tasks.celery_tasks.reconcile_expired_subscriptions_task')
def reconcile_expired_subscriptions_task() -> Dict[str, Any]:
    """Expire subscriptions past their end date."""
    return run_async(_with_session(reconcile_expired_subscriptions))


# ===========================================
# ORDER TASKS
# ===========================================

@shared_task(name='app.tasks.celery_tasks.expire_stale_orders_task')
def expire_stale_orders_task() -> Dict[str, Any]:
    """Expire unpaid checkout orders."""
    return run_async(_with_session(expire_stale_orders))
