from datetime import time

from loguru import logger
from telegram.ext import ContextTypes, JobQueue

from ledger_bot.config import LedgerConfig
from ledger_bot.core.approval import ClearApproval
from ledger_bot.core.report import ReportEngine
from ledger_bot.db.repository import EntryRepository


class ScheduledClear:
    """Report every entry to everyone, then clear the ledger without approval."""

    def __init__(
        self,
        config: LedgerConfig,
        entries: EntryRepository,
        reports: ReportEngine,
        approval: ClearApproval,
        notifier,
    ):
        self.config = config
        self.entries = entries
        self.reports = reports
        self.approval = approval
        self.notifier = notifier

    async def run(self) -> bool:
        try:
            entries = self.entries.find()
            balances = self.reports.balances()
            path = self.reports.write_report(self.reports.detailed_report(entries, balances))

            for chat_id in self.config.recipients():
                await self.notifier.send_document(chat_id, path, caption="📊 Scheduled ledger report")

            removed = self.entries.delete_all()
            discarded = self.approval.discard_pending()
            logger.info(
                "Scheduled clear removed {} entries, discarded {} pending clear requests", removed, discarded
            )

            await self.notifier.broadcast(
                f"🧹 Scheduled clear complete: {removed} entries were reported and removed.",
                self.config.allowed_users,
            )
            return True
        except Exception as e:
            logger.exception("Scheduled report-and-clear failed: {}", e)
            if self.config.admin_id:
                try:
                    await self.notifier.send(self.config.admin_id, f"⚠️ Scheduled report-and-clear failed: {e}")
                except Exception as notify_error:
                    logger.warning("Could not report job failure to admin: {}", notify_error)
            return False


async def report_and_clear_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    await context.bot_data["scheduled_clear"].run()


def schedule_report_jobs(job_queue: JobQueue, config: LedgerConfig, days: list[int], at: time) -> None:
    """Register one monthly job per configured day."""
    when = at.replace(tzinfo=config.zone)
    for day in days:
        job_queue.run_monthly(report_and_clear_job, when=when, day=day, name=f"report_and_clear_{day}")
        logger.info("Report-and-clear scheduled for day {} at {} ({})", day, at.strftime("%H:%M"), config.timezone)
