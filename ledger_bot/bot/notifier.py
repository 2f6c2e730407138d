from pathlib import Path

from loguru import logger
from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.error import TelegramError

from ledger_bot.models.schemas import Button


def build_keyboard(buttons: list[Button]) -> InlineKeyboardMarkup | None:
    """One button per row, or None when there are no buttons."""
    if not buttons:
        return None
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(b.label, callback_data=b.data)] for b in buttons]
    )


class Notifier:
    """Outbound messages to other identities.

    Delivery errors are logged per recipient and never raised, so one
    unreachable chat does not stop the rest of a broadcast.
    """

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send(self, chat_id: str, text: str, buttons: list[Button] | None = None) -> bool:
        try:
            await self.bot.send_message(
                chat_id=chat_id, text=text, reply_markup=build_keyboard(buttons or [])
            )
        except TelegramError as e:
            logger.warning("Failed to send message to {}: {}", chat_id, e)
            return False
        return True

    async def broadcast(self, text: str, recipients: list[str]) -> int:
        delivered = 0
        for chat_id in recipients:
            if await self.send(chat_id, text):
                delivered += 1
        return delivered

    async def send_document(self, chat_id: str, path: Path, caption: str | None = None) -> bool:
        try:
            with open(path, "rb") as f:
                await self.bot.send_document(
                    chat_id=chat_id, document=f, filename=path.name, caption=caption
                )
        except (TelegramError, OSError) as e:
            logger.warning("Failed to send {} to {}: {}", path.name, chat_id, e)
            return False
        return True
