from loguru import logger

from ledger_bot.config import LedgerConfig
from ledger_bot.core.report import ReportEngine
from ledger_bot.db.repository import EntryRepository
from ledger_bot.models.schemas import Button, ClearRequest

APPROVE_PREFIX = "approve_clear:"
DENY_PREFIX = "deny_clear:"

STALE_REQUEST = "⌛ This clear request is no longer active."


class ClearApproval:
    """Two-party handshake in front of deleting every entry.

    The initiator asks, any other unrestricted allow-listed user approves or
    denies. Each round has its own id; once a round is resolved, further
    buttons for it are answered as stale.
    """

    def __init__(self, config: LedgerConfig, entries: EntryRepository, reports: ReportEngine, notifier):
        self.config = config
        self.entries = entries
        self.reports = reports
        self.notifier = notifier
        self.pending: dict[str, ClearRequest] = {}

    async def request(self, user_id: str, username: str) -> str:
        if self.config.is_restricted(user_id):
            return "🚫 You are not allowed to clear entries."

        preview = self.entries.find(limit=self.config.clear_preview_limit)
        if not preview:
            return "❌ No entries found to clear."

        approvers = self.config.approvers(user_id)
        if not approvers:
            return "❌ There is nobody else who can approve clearing the entries."

        path = self.reports.write_report(self.reports.preview_report(preview))
        audience = [self.config.admin_id, user_id] if self.config.admin_id else [user_id]
        for chat_id in dict.fromkeys(audience):
            await self.notifier.send_document(chat_id, path, caption="🗂 Entries before clearing")

        req = ClearRequest(initiator=user_id, initiator_name=username or user_id)
        self.pending[req.id] = req
        logger.info("Clear request {} opened by {}", req.id, user_id)

        buttons = [
            Button(label="✅ Approve", data=f"{APPROVE_PREFIX}{req.id}"),
            Button(label="❌ Deny", data=f"{DENY_PREFIX}{req.id}"),
        ]
        for chat_id in approvers:
            await self.notifier.send(
                chat_id,
                f"⚠️ User {req.initiator_name} is requesting to clear all entries. Do you approve?",
                buttons,
            )
        return "🔔 Request to clear entries has been sent to the other user for approval."

    async def approve(self, user_id: str, request_id: str) -> str:
        if self.config.is_restricted(user_id):
            return "🚫 You are not authorized to approve clearing entries."

        req = self.pending.get(request_id)
        if req is None:
            return STALE_REQUEST
        if req.initiator == user_id:
            return "🚫 You cannot approve your own request."

        removed = self.entries.delete_all()
        self.pending.pop(request_id, None)
        logger.info(
            "Clear request {} approved by {} after {}: {} entries removed",
            request_id,
            user_id,
            req.age(),
            removed,
        )

        await self.notifier.broadcast("🧹 The entries have been cleared.", self.config.others(user_id))
        return "🧹 All entries have been cleared."

    async def deny(self, user_id: str, request_id: str) -> str:
        req = self.pending.pop(request_id, None)
        if req is None:
            return STALE_REQUEST
        logger.info("Clear request {} denied by {} after {}", request_id, user_id, req.age())

        await self.notifier.broadcast(
            "❌ The request to clear entries was denied by the other user.", self.config.others(user_id)
        )
        return "❌ The request to clear entries has been denied."

    def discard_pending(self) -> int:
        count = len(self.pending)
        self.pending.clear()
        return count
