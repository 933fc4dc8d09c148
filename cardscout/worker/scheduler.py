"""APScheduler job definitions."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from cardscout.config import settings
from cardscout.worker.tasks import PipelineRunner

logger = logging.getLogger(__name__)


def setup_scheduler(runner: PipelineRunner) -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    Scheduling overview:
    - Prospect analysis runs daily at settings.prospect_analysis_cron_hour (UTC)
    - Market scans run every settings.market_scan_interval_minutes

    Returns:
        Configured scheduler instance
    """
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        runner.scheduled_prospect_analysis,
        CronTrigger(hour=settings.prospect_analysis_cron_hour, minute=0),
        id="prospect_analysis",
        name="Score prospects and refresh watch lists",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    scan_interval = max(1, int(settings.market_scan_interval_minutes))
    scheduler.add_job(
        runner.scheduled_market_scan,
        IntervalTrigger(minutes=scan_interval),
        id="market_scan",
        name="Scan marketplaces for underpriced cards",
        max_instances=1,
        coalesce=True,
        misfire_grace_time=600,
        replace_existing=True,
    )

    logger.info(
        f"Scheduled prospect analysis at {settings.prospect_analysis_cron_hour:02d}:00 UTC "
        f"and market scans every {scan_interval} minutes"
    )
    return scheduler
