"""Enqueue helpers for background jobs on ARQ."""

from __future__ import annotations

import structlog
from arq.connections import ArqRedis


def registration_job_id(shop: str) -> str:
    """Deterministic job id: ARQ drops a duplicate while one is queued."""
    return f"register-webhooks:{shop}"


async def enqueue_webhook_registration(redis: ArqRedis, shop: str) -> str | None:
    """Queue webhook registration for a freshly installed shop.

    Returns:
        The ARQ job id, or None if an identical job is already queued.
    """
    log = structlog.get_logger().bind(shop=shop)
    job = await redis.enqueue_job(
        "arq_register_webhooks",
        shop,
        _job_id=registration_job_id(shop),
    )
    if job is None:
        log.debug("webhook_registration_already_queued")
        return None
    log.info("webhook_registration_enqueued", arq_job_id=job.job_id)
    return job.job_id
