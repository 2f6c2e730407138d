from datetime import datetime, timezone

from loguru import logger

from ledger_bot.config import LedgerConfig
from ledger_bot.core.amount import half_share, parse_amount, split_evenly
from ledger_bot.core.report import format_amount, format_time
from ledger_bot.db.repository import EntryRepository, SessionRepository
from ledger_bot.errors import InvalidAmount, StoreFailure
from ledger_bot.models.schemas import (
    AwaitingAmount,
    AwaitingModeChoice,
    AwaitingSplitAmount,
    Button,
    Entry,
    Idle,
    Mode,
    Reply,
)

CHOOSE_PREFIX = "choose:"
MODE_PREFIX = "mode:"
SPLIT = "split"
CANCEL = "cancel"

CANCEL_BUTTON = Button(label="❌ Cancel", data=CANCEL)
ABORT_HINT = "Or type /cancel to abort."


class Conversation:
    """Per-user flow: participant -> entry type -> amount and note -> entry.

    Session state is read from the store on every step, so a pending entry
    survives restarts.
    """

    def __init__(self, config: LedgerConfig, entries: EntryRepository, sessions: SessionRepository, notifier):
        self.config = config
        self.entries = entries
        self.sessions = sessions
        self.notifier = notifier

    def _amount(self, amount: int) -> str:
        return format_amount(amount, self.config)

    def start(self, user_id: str) -> Reply:
        self.sessions.reset(user_id)
        split_button = Button(label=f"{self.config.split_label} (Split equally)", data=SPLIT)
        if self.config.is_restricted(user_id):
            return Reply(
                text=f"You can only add money to the {self.config.split_label} category (split equally).",
                buttons=[split_button, CANCEL_BUTTON],
            )
        buttons = [Button(label=name, data=f"{CHOOSE_PREFIX}{name}") for name in self.config.participants]
        return Reply(text="Who is adding money?", buttons=buttons + [split_button, CANCEL_BUTTON])

    def choose_participant(self, user_id: str, participant: str) -> Reply:
        if participant not in self.config.participants or self.config.is_restricted(user_id):
            return Reply(text="🚫 That option is not available to you.")

        if not self.config.mode_step:
            self.sessions.save(user_id, AwaitingAmount(participant=participant, mode="debt"))
            return Reply(text=f"💬 Great! Now enter amount and note.\nExample: 500 lunch\n{ABORT_HINT}")

        self.sessions.save(user_id, AwaitingModeChoice(participant=participant))
        return Reply(
            text=f"What kind of entry is this for {participant}?",
            buttons=[
                Button(label="🧾 Expense (half is recorded)", data=f"{MODE_PREFIX}expense"),
                Button(label="💵 Debt (full amount)", data=f"{MODE_PREFIX}debt"),
                CANCEL_BUTTON,
            ],
        )

    def choose_mode(self, user_id: str, mode: Mode) -> Reply:
        state = self.sessions.get(user_id)
        if not isinstance(state, (AwaitingModeChoice, AwaitingAmount)):
            return Reply(text="Nothing to choose right now. Use /add to start a new entry.")

        self.sessions.save(user_id, AwaitingAmount(participant=state.participant, mode=mode))
        if mode == "expense":
            return Reply(
                text=(
                    f"💬 Enter the TOTAL amount and a note. Half of it will be recorded for {state.participant}.\n"
                    f"Example: 30000 dinner\n{ABORT_HINT}"
                )
            )
        return Reply(
            text=(
                f"💬 Enter the amount and a note. The full amount will be recorded for {state.participant}.\n"
                f"Example: 30.000 borrowed\n{ABORT_HINT}"
            )
        )

    def choose_split(self, user_id: str) -> Reply:
        self.sessions.save(user_id, AwaitingSplitAmount())
        return Reply(
            text=f"💬 Great! Now enter the total amount to be split equally and a note.\nExample: 1500 snacks\n{ABORT_HINT}"
        )

    def cancel(self, user_id: str) -> Reply:
        self.sessions.reset(user_id)
        return Reply(text="Operation cancelled.")

    def _build_entries(self, state, amount: int, note: str, now: datetime) -> list[Entry]:
        if isinstance(state, AwaitingSplitAmount):
            shares = split_evenly(amount, len(self.config.participants))
            return [
                Entry(name=name, amount=share, note=note, time=now)
                for name, share in zip(self.config.participants, shares)
            ]
        if isinstance(state, AwaitingAmount) and state.mode == "expense":
            return [Entry(name=state.participant, amount=half_share(amount), note=note, time=now)]
        # Debt, or a participant picked without choosing a mode yet
        return [Entry(name=state.participant, amount=amount, note=note, time=now)]

    def _messages(self, state, amount: int, created: list[Entry], actor: str) -> tuple[str, str]:
        note = created[0].note
        stamp = format_time(created[0].time, self.config)
        if isinstance(state, AwaitingSplitAmount):
            shares = ", ".join(f"{e.name} {self._amount(e.amount)}" for e in created)
            confirmation = f"✅ Amount of {self._amount(amount)} has been divided equally: {shares}."
            notice = f"🔔 {actor} split {self._amount(amount)} equally.\n💵 {shares}\n📝 Note: {note}\n🕒 {stamp}"
            return confirmation, notice

        entry = created[0]
        if isinstance(state, AwaitingAmount) and state.mode == "expense":
            confirmation = (
                f"✅ Expense of {self._amount(amount)} recorded: "
                f"{self._amount(entry.amount)} added for {entry.name}."
            )
            notice = (
                f"🔔 {entry.name} added {self._amount(entry.amount)} "
                f"(half of {self._amount(amount)} expense)\n📝 Note: {note}\n🕒 {stamp}"
            )
            return confirmation, notice

        confirmation = f"✅ Amount of {self._amount(entry.amount)} has been added for {entry.name}."
        notice = f"🔔 {entry.name} added {self._amount(entry.amount)}\n📝 Note: {note}\n🕒 {stamp}"
        return confirmation, notice

    async def handle_text(self, user_id: str, text: str, actor: str = "") -> Reply | None:
        """Commit the pending entry from an 'amount note' message.

        Returns None when the user has no pending selection.
        """
        state = self.sessions.get(user_id)
        if isinstance(state, Idle):
            return None

        parts = text.split()
        try:
            if not parts:
                raise InvalidAmount(text)
            amount = parse_amount(parts[0])
        except InvalidAmount:
            return Reply(text=f"❌ Invalid amount. Please enter a valid amount (e.g. 500 snacks).\n{ABORT_HINT}")
        note = " ".join(parts[1:])

        created = self._build_entries(state, amount, note, datetime.now(timezone.utc))
        self.entries.add_many(created)
        logger.info(
            "User {} recorded {} ({})",
            user_id,
            ", ".join(f"{e.name}={e.amount}" for e in created),
            state.state,
        )

        try:
            self.sessions.reset(user_id)
        except StoreFailure:
            # Entries are already stored at this point
            logger.warning("Could not reset session for {} after commit", user_id)

        confirmation, notice = self._messages(state, amount, created, actor or user_id)
        await self.notifier.broadcast(notice, self.config.others(user_id))
        return Reply(text=confirmation)
