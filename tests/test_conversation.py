"""Tests for the entry conversation flow."""

import pytest

from ledger_bot.config import LedgerConfig
from ledger_bot.core.conversation import CANCEL, CHOOSE_PREFIX, MODE_PREFIX, SPLIT, Conversation
from ledger_bot.errors import StoreFailure
from ledger_bot.models.schemas import (
    AwaitingAmount,
    AwaitingModeChoice,
    AwaitingSplitAmount,
    Idle,
)

USER_A = "111"
USER_B = "222"


class TestSelection:
    """Tests for the selection steps before an amount is entered."""

    def test_start_resets_and_offers_participants(self, conversation, sessions):
        sessions.save(USER_A, AwaitingSplitAmount())

        reply = conversation.start(USER_A)

        assert isinstance(sessions.get(USER_A), Idle)
        assert [b.data for b in reply.buttons] == [
            f"{CHOOSE_PREFIX}Sheyx",
            f"{CHOOSE_PREFIX}Polvon",
            SPLIT,
            CANCEL,
        ]

    def test_choose_participant_asks_for_mode(self, conversation, sessions):
        reply = conversation.choose_participant(USER_A, "Sheyx")

        assert sessions.get(USER_A) == AwaitingModeChoice(participant="Sheyx")
        assert [b.data for b in reply.buttons] == [f"{MODE_PREFIX}expense", f"{MODE_PREFIX}debt", CANCEL]

    def test_choose_unknown_participant(self, conversation, sessions):
        reply = conversation.choose_participant(USER_A, "Mallory")

        assert "not available" in reply.text
        assert isinstance(sessions.get(USER_A), Idle)

    def test_choose_mode(self, conversation, sessions):
        conversation.choose_participant(USER_A, "Polvon")

        reply = conversation.choose_mode(USER_A, "expense")

        assert sessions.get(USER_A) == AwaitingAmount(participant="Polvon", mode="expense")
        assert "TOTAL" in reply.text

    def test_choose_mode_without_participant(self, conversation, sessions):
        reply = conversation.choose_mode(USER_A, "debt")

        assert "/add" in reply.text
        assert isinstance(sessions.get(USER_A), Idle)

    def test_choose_split(self, conversation, sessions):
        conversation.choose_split(USER_A)
        assert isinstance(sessions.get(USER_A), AwaitingSplitAmount)

    def test_cancel_from_any_state(self, conversation, sessions):
        conversation.choose_participant(USER_A, "Sheyx")
        conversation.choose_mode(USER_A, "debt")

        reply = conversation.cancel(USER_A)

        assert reply.text == "Operation cancelled."
        assert isinstance(sessions.get(USER_A), Idle)

    def test_without_mode_step_goes_straight_to_amount(self, config, entries, sessions, notifier):
        flat = Conversation(config.model_copy(update={"mode_step": False}), entries, sessions, notifier)

        reply = flat.choose_participant(USER_A, "Sheyx")

        assert reply.buttons == []
        assert sessions.get(USER_A) == AwaitingAmount(participant="Sheyx", mode="debt")


class TestRestrictedMember:
    """Tests for members limited to split entries."""

    @pytest.fixture
    def restricted(self, entries, sessions, notifier, tmp_path):
        config = LedgerConfig(
            participants=["Sheyx", "Polvon", "Jyan"],
            allowed_users=["111", "222", "333"],
            restricted_users={"333": "Jyan"},
            report_path=tmp_path / "r.txt",
        )
        return Conversation(config, entries, sessions, notifier)

    def test_start_offers_only_split(self, restricted):
        reply = restricted.start("333")
        assert [b.data for b in reply.buttons] == [SPLIT, CANCEL]

    def test_cannot_pick_participant(self, restricted, sessions):
        restricted.choose_participant("333", "Sheyx")
        assert isinstance(sessions.get("333"), Idle)

    @pytest.mark.asyncio
    async def test_split_three_ways(self, restricted, entries):
        restricted.choose_split("333")

        await restricted.handle_text("333", "100 pizza")

        amounts = {e.name: e.amount for e in entries.find()}
        assert amounts == {"Sheyx": 34, "Polvon": 33, "Jyan": 33}


class TestCommit:
    """Tests for committing free-text amount input."""

    @pytest.mark.asyncio
    async def test_debt_scenario(self, conversation, entries, sessions, notifier):
        """Test /add -> Sheyx -> Debt -> '30.000 borrowed'."""
        conversation.start(USER_A)
        conversation.choose_participant(USER_A, "Sheyx")
        conversation.choose_mode(USER_A, "debt")

        reply = await conversation.handle_text(USER_A, "30.000 borrowed", actor="alice")

        stored = entries.find()
        assert len(stored) == 1
        assert (stored[0].name, stored[0].amount, stored[0].note) == ("Sheyx", 30000, "borrowed")
        assert isinstance(sessions.get(USER_A), Idle)
        assert "30,000₩" in reply.text

        notifier.broadcast.assert_awaited_once()
        text, recipients = notifier.broadcast.await_args.args
        assert recipients == [USER_B]
        assert "Sheyx" in text
        assert "30,000" in text
        assert "borrowed" in text

    @pytest.mark.asyncio
    async def test_expense_records_half(self, conversation, entries):
        conversation.choose_participant(USER_A, "Polvon")
        conversation.choose_mode(USER_A, "expense")

        await conversation.handle_text(USER_A, "30001 dinner out")

        stored = entries.find()
        assert len(stored) == 1
        assert stored[0].name == "Polvon"
        assert stored[0].amount == 15001
        assert stored[0].note == "dinner out"

    @pytest.mark.asyncio
    async def test_split_scenario(self, conversation, entries, sessions):
        """Test split target with '50000 snacks' and two participants."""
        conversation.choose_split(USER_A)

        await conversation.handle_text(USER_A, "50000 snacks")

        stored = entries.find()
        assert sorted(e.name for e in stored) == ["Polvon", "Sheyx"]
        assert all(e.amount == 25000 for e in stored)
        assert all(e.note == "snacks" for e in stored)
        assert len({e.time for e in stored}) == 1
        assert isinstance(sessions.get(USER_A), Idle)

    @pytest.mark.asyncio
    async def test_odd_split_sums_to_total(self, conversation, entries):
        conversation.choose_split(USER_A)

        await conversation.handle_text(USER_A, "50001")

        amounts = {e.name: e.amount for e in entries.find()}
        assert amounts == {"Sheyx": 25001, "Polvon": 25000}

    @pytest.mark.asyncio
    async def test_note_defaults_to_empty_and_whitespace_collapses(self, conversation, entries):
        conversation.choose_participant(USER_A, "Sheyx")
        conversation.choose_mode(USER_A, "debt")

        await conversation.handle_text(USER_A, "  500   ")
        assert entries.find()[0].note == ""

        conversation.choose_participant(USER_A, "Sheyx")
        conversation.choose_mode(USER_A, "debt")
        await conversation.handle_text(USER_A, "500   late   lunch")
        assert entries.find()[0].note == "late lunch"

    @pytest.mark.asyncio
    async def test_text_before_mode_is_recorded_as_debt(self, conversation, entries):
        conversation.choose_participant(USER_A, "Sheyx")

        await conversation.handle_text(USER_A, "700 taxi")

        assert entries.find()[0].amount == 700

    @pytest.mark.asyncio
    async def test_invalid_amount_keeps_session(self, conversation, entries, sessions, notifier):
        conversation.choose_participant(USER_A, "Sheyx")
        conversation.choose_mode(USER_A, "debt")

        reply = await conversation.handle_text(USER_A, "lots of money")

        assert "Invalid amount" in reply.text
        assert entries.find() == []
        assert sessions.get(USER_A) == AwaitingAmount(participant="Sheyx", mode="debt")
        notifier.broadcast.assert_not_awaited()

        await conversation.handle_text(USER_A, "1,500 retry")
        assert entries.find()[0].amount == 1500

    @pytest.mark.asyncio
    async def test_idle_text_is_ignored(self, conversation, entries, notifier):
        reply = await conversation.handle_text(USER_A, "500 coffee")

        assert reply is None
        assert entries.find() == []
        notifier.broadcast.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failure_leaves_session(self, conversation, entries, sessions, monkeypatch):
        conversation.choose_split(USER_A)

        def fail(batch):
            raise StoreFailure("insert entries")

        monkeypatch.setattr(entries, "add_many", fail)

        with pytest.raises(StoreFailure):
            await conversation.handle_text(USER_A, "50000 snacks")

        assert isinstance(sessions.get(USER_A), AwaitingSplitAmount)

    @pytest.mark.asyncio
    async def test_session_survives_new_conversation_object(self, conversation, config, entries, sessions, notifier):
        """Test that state lives in the store, not in the Conversation instance."""
        conversation.choose_participant(USER_A, "Sheyx")
        conversation.choose_mode(USER_A, "debt")

        fresh = Conversation(config, entries, sessions, notifier)
        await fresh.handle_text(USER_A, "900 bus")

        assert entries.find()[0].amount == 900
