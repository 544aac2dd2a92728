"""Tests for the periodic price tick job."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_settings
from shopwatch.core import scheduler as scheduler_module
from shopwatch.core.scheduler import price_tick_job, setup_scheduler
from shopwatch.models import Offer


def test_scheduler_disabled_by_default():
    assert setup_scheduler(MagicMock(), make_settings()) is None


def test_scheduler_registers_single_instance_job():
    scheduler = setup_scheduler(MagicMock(), make_settings(PRICE_TICK_INTERVAL_SECONDS=60))

    job = scheduler.get_job("price_tick")
    assert job is not None
    assert job.max_instances == 1
    assert job.coalesce is True
    assert job.trigger.interval.total_seconds() == 60


@pytest.mark.asyncio
async def test_price_tick_job_runs_a_tick(session_factory, build):
    product = await build.product()
    offer = await build.offer(product, "web:ebay", 10000)
    offer_id = offer.id

    await price_tick_job(session_factory)

    async with session_factory() as db:
        stored = await db.get(Offer, offer_id)
        assert 9800 <= stored.price_cents <= 10200


@pytest.mark.asyncio
async def test_price_tick_job_survives_failure(session_factory, monkeypatch):
    failing = AsyncMock(side_effect=RuntimeError("tick failed"))
    monkeypatch.setattr(scheduler_module, "run_price_tick", failing)

    await price_tick_job(session_factory)

    failing.assert_awaited_once()
