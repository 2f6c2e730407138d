from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from ledger_bot.config import LedgerConfig
from ledger_bot.db.repository import EntryRepository
from ledger_bot.errors import StoreFailure
from ledger_bot.models.schemas import Button, Entry, Reply

MAX_MESSAGE_LENGTH = 4000
NO_NOTE = "No note"


def format_amount(amount: int, config: LedgerConfig) -> str:
    """Format amount with digit grouping: 30000 -> '30,000₩'."""
    grouped = f"{amount:,}".replace(",", config.thousands_separator)
    return f"{grouped}{config.currency}"


def format_time(moment: datetime, config: LedgerConfig) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(config.zone).strftime("%Y-%m-%d %H:%M")


def compute_balances(entries: list[Entry], participants: list[str]) -> dict[str, int]:
    """Sum amounts per participant, in canonical order.

    Names that are no longer configured participants are kept after the
    configured ones so their money is not lost from totals.
    """
    balances = {name: 0 for name in participants}
    for entry in entries:
        balances[entry.name] = balances.get(entry.name, 0) + entry.amount
    return balances


def chunk_text(text: str, limit: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split text into chunks of at most ``limit`` characters, preferring line breaks."""
    chunks: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        if len(current) + len(line) > limit:
            chunks.append(current)
            current = ""
        current += line
    if current:
        chunks.append(current)
    return chunks


class ReportEngine:
    def __init__(self, config: LedgerConfig, entries: EntryRepository):
        self.config = config
        self.entries = entries

    def _amount(self, amount: int) -> str:
        return format_amount(amount, self.config)

    def _time(self, moment: datetime) -> str:
        return format_time(moment, self.config)

    def balances(self) -> dict[str, int]:
        return compute_balances(self.entries.find(), self.config.participants)

    def scopes_for(self, user_id: str) -> list[str]:
        """Participants whose balance and entries ``user_id`` may view."""
        if self.config.is_restricted(user_id):
            return [self.config.restricted_users[user_id]]
        return list(self.config.participants)

    def balance_prompt(self, user_id: str) -> Reply:
        buttons = [Button(label=name, data=f"balance:{name}") for name in self.scopes_for(user_id)]
        if self.config.is_restricted(user_id):
            return Reply(text="You can only view your own balance.", buttons=buttons)
        buttons.append(Button(label="Total Balance", data="balance:total"))
        return Reply(text="Choose whose balance to view:", buttons=buttons)

    def list_prompt(self, user_id: str) -> Reply:
        buttons = [Button(label=name, data=f"list:{name}") for name in self.scopes_for(user_id)]
        if self.config.is_restricted(user_id):
            return Reply(text="You can only view your own entries.", buttons=buttons)
        buttons.append(Button(label="All Entries", data="list:all"))
        return Reply(text="Choose whose entries to view:", buttons=buttons)

    def total_balance_text(self) -> str:
        balances = self.balances()
        lines = ["💰 Balance:"]
        for name, amount in balances.items():
            lines.append(f"{name}: {self._amount(amount)}")
        lines.append(f"Total: {self._amount(sum(balances.values()))}")
        return "\n".join(lines)

    def participant_balance_text(self, name: str) -> str:
        entries = self.entries.find(name=name)
        if not entries:
            return f"No entries found for {name}."
        total = sum(e.amount for e in entries)
        lines = [f"💰 {name}'s Total: {self._amount(total)}", "", "📝 Entries:"]
        for e in entries:
            lines.append(f"🔹 {self._amount(e.amount)} - {e.note or NO_NOTE} ({self._time(e.time)})")
        return "\n".join(lines)

    def list_chunks(self, name: str | None = None) -> list[str]:
        """Entries for ``name`` (or everyone) split into message-sized chunks."""
        entries = self.entries.find(name=name)
        if not entries:
            return [f"📭 No entries found for {name}." if name else "📭 No entries found."]

        lines = [f"📄 Entries for {name}:" if name else "📜 All Entries:", ""]
        for index, e in enumerate(entries, 1):
            head = f"{index}. 💵 {self._amount(e.amount)}"
            if not name:
                head = f"{index}. 👤 {e.name} 💵 {self._amount(e.amount)}"
            lines.append(head)
            lines.append(f"  📝 {e.note or NO_NOTE}")
            lines.append(f"  🕒 {self._time(e.time)}  🆔 {e.id}")
            lines.append("")
        return chunk_text("\n".join(lines))

    def detailed_report(
        self,
        entries: list[Entry],
        balances: dict[str, int],
        generated_at: datetime | None = None,
    ) -> str:
        """Full report: every participant's entries followed by pre-clear balances."""
        generated_at = generated_at or datetime.now(timezone.utc)
        lines = [
            "📊 Ledger report",
            f"Generated: {self._time(generated_at)} ({self.config.timezone})",
            "",
        ]
        for name in balances:
            own = sorted((e for e in entries if e.name == name), key=lambda e: e.time, reverse=True)
            lines.append(f"👤 {name} ({len(own)} entries)")
            if not own:
                lines.append("  (no entries)")
            for index, e in enumerate(own, 1):
                lines.append(
                    f"  {index}. {self._amount(e.amount)} | {e.note or NO_NOTE} | {self._time(e.time)}"
                )
            lines.append("")

        lines.append("💰 Balances before clear:")
        for name, amount in balances.items():
            lines.append(f"{name}: {self._amount(amount)}")
        lines.append(f"Total: {self._amount(sum(balances.values()))}")
        return "\n".join(lines) + "\n"

    def preview_report(self, entries: list[Entry]) -> str:
        lines = [f"Last {len(entries)} entries before clearing:", ""]
        for index, e in enumerate(entries, 1):
            lines.append(f"{index}. 👤 {e.name}")
            lines.append(f" 💵 {self._amount(e.amount)}")
            lines.append(f" 📝 {e.note or NO_NOTE}")
            lines.append(f" 🕒 {self._time(e.time)}")
            lines.append("")
        return "\n".join(lines)

    def write_report(self, text: str) -> Path:
        """Write the transient report artifact, replacing the previous one."""
        path = self.config.report_path
        try:
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            logger.error("Could not write report to {}: {}", path, e)
            raise StoreFailure("write report") from e
        logger.info("Wrote report to {} ({} chars)", path, len(text))
        return path
