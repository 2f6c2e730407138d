from loguru import logger
from telegram import Update
from telegram.ext import ApplicationHandlerStop, ContextTypes

from ledger_bot.config import LedgerConfig

REFUSAL = "🚫 You are not authorized to use this bot."


def _describe_input(update: Update) -> str:
    if update.callback_query is not None:
        return f"[button] {update.callback_query.data}"
    if update.effective_message is not None and update.effective_message.text:
        return update.effective_message.text
    return "Unknown"


def make_access_guard(config: LedgerConfig, notifier):
    """Build a handler that stops every update from identities not on the allow-list."""

    async def access_guard(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is not None and config.is_allowed(str(user.id)):
            return

        user_id = str(user.id) if user else "unknown"
        username = user.username if user and user.username else "-"
        text = _describe_input(update)
        logger.warning("Unauthorized access attempt by {} ({}): {}", username, user_id, text)

        if config.admin_id:
            await notifier.send(
                config.admin_id,
                f"🚨 Unauthorized Access Attempt\n👤 User: {username} ({user_id})\nMessage: {text}",
            )

        if update.callback_query is not None:
            await update.callback_query.answer(REFUSAL, show_alert=True)
        elif update.effective_message is not None:
            await update.effective_message.reply_text(REFUSAL)
        raise ApplicationHandlerStop

    return access_guard
