import functools

from loguru import logger
from telegram import BotCommand, Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    TypeHandler,
    filters,
)

from ledger_bot import deps
from ledger_bot.bot.guard import make_access_guard
from ledger_bot.bot.notifier import Notifier, build_keyboard
from ledger_bot.config import Settings, get_settings
from ledger_bot.core.approval import APPROVE_PREFIX, DENY_PREFIX, ClearApproval
from ledger_bot.core.conversation import CANCEL, CHOOSE_PREFIX, MODE_PREFIX, SPLIT, Conversation
from ledger_bot.core.report import ReportEngine, format_amount, format_time
from ledger_bot.core.scheduler import ScheduledClear, schedule_report_jobs
from ledger_bot.db.repository import EntryRepository, SessionRepository, open_db
from ledger_bot.errors import NotFound, StoreFailure
from ledger_bot.models.schemas import Reply

# New text messages only; edits of already committed input are ignored
TEXT_INPUT = filters.UpdateType.MESSAGE & filters.TEXT & ~filters.COMMAND

GENERIC_FAILURE = "❌ An error occurred while processing your request. Please try again."

BOT_COMMANDS = [
    BotCommand("add", "Add money entry"),
    BotCommand("balance", "View balance"),
    BotCommand("list", "Show all entries"),
    BotCommand("clear", "Clear all entries (needs approval)"),
    BotCommand("cancel", "Cancel current operation"),
]


def _user_id(update: Update) -> str:
    return str(update.effective_user.id)


def _display_name(update: Update) -> str:
    user = update.effective_user
    return user.username or user.full_name or str(user.id)


async def _send(update: Update, context: ContextTypes.DEFAULT_TYPE, reply: Reply | str) -> None:
    """Reply in the chat the update came from."""
    if isinstance(reply, str):
        reply = Reply(text=reply)
    await context.bot.send_message(
        chat_id=update.effective_chat.id,
        text=reply.text,
        reply_markup=build_keyboard(reply.buttons),
    )


def store_boundary(handler):
    """Answer with a generic failure when the store is unavailable."""

    @functools.wraps(handler)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
        try:
            return await handler(update, context)
        except StoreFailure as e:
            logger.error("{} failed for user {}: {}", handler.__name__, _user_id(update), e)
            await _send(update, context, GENERIC_FAILURE)

    return wrapper


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /start command."""
    await _send(
        update,
        context,
        "👋 Welcome!\n"
        "Use /add to add money.\n"
        "Use /balance to view totals.\n"
        "Use /list to see entries.\n"
        "Use /clear to report and clear all entries.\n"
        "Use /cancel to abort the current entry.",
    )


@store_boundary
async def add_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    conversation: Conversation = context.bot_data["conversation"]
    await _send(update, context, conversation.start(_user_id(update)))


@store_boundary
async def cancel_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    conversation: Conversation = context.bot_data["conversation"]
    await _send(update, context, conversation.cancel(_user_id(update)))


async def balance_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    reports: ReportEngine = context.bot_data["reports"]
    await _send(update, context, reports.balance_prompt(_user_id(update)))


async def list_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    reports: ReportEngine = context.bot_data["reports"]
    await _send(update, context, reports.list_prompt(_user_id(update)))


@store_boundary
async def clear_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    approval: ClearApproval = context.bot_data["approval"]
    await _send(update, context, await approval.request(_user_id(update), _display_name(update)))


@store_boundary
async def delete_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /delete <entry_id> (administrator only)."""
    user_id = _user_id(update)
    config = context.bot_data["config"]
    notifier: Notifier = context.bot_data["notifier"]

    if len(context.args or []) != 1:
        await _send(update, context, "❌ Usage: /delete <entry_id>\nExample: /delete abc123")
        return
    if not (config.is_allowed(user_id) and config.is_admin(user_id)):
        await _send(update, context, "🚫 You're not authorized to delete entries.")
        return

    entry_id = context.args[0]
    try:
        entry = context.bot_data["entries"].pop(entry_id)
    except NotFound:
        await _send(update, context, f"❌ Entry with ID {entry_id} not found.")
        return

    logger.info("Admin {} deleted entry {}", user_id, entry_id)
    await _send(update, context, f"🗑️ Entry {entry_id} deleted successfully.")
    await notifier.broadcast(
        f"⚠️ Entry deleted by admin:\n👤 {entry.name}\n💵 {format_amount(entry.amount, config)}\n"
        f"📝 {entry.note}\n🕒 {format_time(entry.time, config)}",
        config.others(user_id),
    )


async def _show_balance(update: Update, context: ContextTypes.DEFAULT_TYPE, scope: str) -> None:
    reports: ReportEngine = context.bot_data["reports"]
    user_id = _user_id(update)
    if scope == "total" and not context.bot_data["config"].is_restricted(user_id):
        await _send(update, context, reports.total_balance_text())
    elif scope in reports.scopes_for(user_id):
        await _send(update, context, reports.participant_balance_text(scope))
    else:
        await _send(update, context, "🚫 You can only view your own balance.")


async def _show_list(update: Update, context: ContextTypes.DEFAULT_TYPE, scope: str) -> None:
    reports: ReportEngine = context.bot_data["reports"]
    user_id = _user_id(update)
    if scope == "all" and not context.bot_data["config"].is_restricted(user_id):
        chunks = reports.list_chunks()
    elif scope in reports.scopes_for(user_id):
        chunks = reports.list_chunks(scope)
    else:
        await _send(update, context, "🚫 You can only view your own entries.")
        return
    for chunk in chunks:
        await _send(update, context, chunk)


@store_boundary
async def handle_callback(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Dispatch inline button presses."""
    query = update.callback_query
    await query.answer()
    data = query.data or ""
    user_id = _user_id(update)
    conversation: Conversation = context.bot_data["conversation"]
    approval: ClearApproval = context.bot_data["approval"]

    if data == CANCEL:
        await _send(update, context, conversation.cancel(user_id))
    elif data == SPLIT:
        await _send(update, context, conversation.choose_split(user_id))
    elif data.startswith(CHOOSE_PREFIX):
        await _send(update, context, conversation.choose_participant(user_id, data[len(CHOOSE_PREFIX):]))
    elif data.startswith(MODE_PREFIX):
        mode = data[len(MODE_PREFIX):]
        if mode not in ("debt", "expense"):
            logger.warning("Unknown mode {!r} from {}", mode, user_id)
            return
        await _send(update, context, conversation.choose_mode(user_id, mode))
    elif data.startswith("balance:"):
        await _show_balance(update, context, data[len("balance:"):])
    elif data.startswith("list:"):
        await _show_list(update, context, data[len("list:"):])
    elif data.startswith(APPROVE_PREFIX):
        result = await approval.approve(user_id, data[len(APPROVE_PREFIX):])
        await query.edit_message_text(result)
    elif data.startswith(DENY_PREFIX):
        result = await approval.deny(user_id, data[len(DENY_PREFIX):])
        await query.edit_message_text(result)
    else:
        logger.warning("Unknown callback data {!r} from {}", data, user_id)


@store_boundary
async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Free text: the 'amount note' input of a pending entry."""
    message = update.message
    if message is None or message.text is None:
        return
    conversation: Conversation = context.bot_data["conversation"]
    reply = await conversation.handle_text(_user_id(update), message.text, actor=_display_name(update))
    if reply is not None:
        await _send(update, context, reply)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.opt(exception=context.error).error("Unhandled error while processing update {}", update)


def build_bot_app(settings: Settings | None = None) -> Application:
    """Build and return the Telegram bot application."""
    settings = settings or get_settings()
    ledger = settings.ledger_config()
    # The HTTP routes read through the shared handle in deps
    db = deps.db if settings.db_path == deps.settings.db_path else open_db(settings.db_path)
    entries = EntryRepository(db)
    sessions = SessionRepository(db)

    app = Application.builder().token(settings.telegram_bot_token).build()

    notifier = Notifier(app.bot)
    reports = ReportEngine(ledger, entries)
    approval = ClearApproval(ledger, entries, reports, notifier)
    app.bot_data.update(
        config=ledger,
        entries=entries,
        notifier=notifier,
        reports=reports,
        approval=approval,
        conversation=Conversation(ledger, entries, sessions, notifier),
        scheduled_clear=ScheduledClear(ledger, entries, reports, approval, notifier),
    )

    # Runs before every other handler
    app.add_handler(TypeHandler(Update, make_access_guard(ledger, notifier)), group=-1)

    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("add", add_command))
    app.add_handler(CommandHandler("cancel", cancel_command))
    app.add_handler(CommandHandler("balance", balance_command))
    app.add_handler(CommandHandler("list", list_command))
    app.add_handler(CommandHandler("clear", clear_command))
    app.add_handler(CommandHandler("delete", delete_command))

    app.add_handler(CallbackQueryHandler(handle_callback))
    app.add_handler(MessageHandler(TEXT_INPUT, handle_message))
    app.add_error_handler(error_handler)

    if app.job_queue is None:
        logger.warning("Job queue unavailable; scheduled report-and-clear is disabled")
    else:
        schedule_report_jobs(app.job_queue, ledger, settings.report_days, settings.report_time)

    return app
