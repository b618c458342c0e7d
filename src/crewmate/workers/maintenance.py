"""arq worker for engagement maintenance jobs.

Import path for the arq CLI: ``arq crewmate.workers.maintenance.WorkerSettings``
"""

from __future__ import annotations

from typing import Any

import structlog
from arq.connections import ArqRedis, RedisSettings, create_pool

from crewmate.config import get_settings
from crewmate.database import close_db, get_session_factory, init_db
from crewmate.engagement.config import EngagementConfig
from crewmate.engagement.effects import EffectApplier
from crewmate.middleware.logging import setup_logging
from crewmate.notifications.preferences import PreferenceGate
from crewmate.notifications.push import NotificationPublisher
from crewmate.redis_client import close_redis, get_redis, init_redis
from crewmate.referrals.ledger import ReferralLedger
from crewmate.store import SqlStatsStore

logger = structlog.get_logger()


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Open the DB and Redis pools and build the ledger once per worker."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url, settings.database_pool_size, settings.database_max_overflow)
    await init_redis(settings.redis_url)

    store = SqlStatsStore(get_session_factory())
    config = EngagementConfig.from_settings(settings)
    redis = get_redis()
    applier = EffectApplier(
        store,
        config,
        publisher=NotificationPublisher(redis, PreferenceGate(store)),
        claim_queue=redis,
    )
    ctx["ledger"] = ReferralLedger(store, config, applier)
    logger.info("maintenance_worker_started")


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Close pools on worker shutdown."""
    ctx.pop("ledger", None)
    await close_db()
    await close_redis()
    logger.info("maintenance_worker_stopped")


async def recount_referrals_job(ctx: dict, referrer_id: str) -> dict[str, Any]:  # type: ignore[type-arg]
    """Reconcile one referrer's completed-referral count."""
    ledger: ReferralLedger = ctx["ledger"]
    report = await ledger.recount_referrals(referrer_id)
    return {
        "referrer_id": referrer_id,
        "total_referred": report.total_referred,
        "completed": report.completed,
        "pending": report.pending,
        "newly_credited": report.newly_credited,
        "badges_awarded": list(report.badges_awarded),
        "claim_triggered": report.claim_triggered,
    }


async def enqueue_recount(referrer_id: str, pool: ArqRedis | None = None) -> str | None:
    """Queue a recount; returns the arq job id."""
    owns_pool = pool is None
    if pool is None:
        pool = await create_pool(RedisSettings.from_dsn(get_settings().arq_redis_url))
    try:
        job = await pool.enqueue_job("recount_referrals_job", referrer_id)
    finally:
        if owns_pool:
            await pool.aclose()
    return job.job_id if job else None


class WorkerSettings:
    """arq worker settings for maintenance jobs."""

    functions = [recount_referrals_job]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    max_jobs = 4
    job_timeout = 300
