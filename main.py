"""HTTP entry point. The Telegram bot polls inside the same process."""

import sys

from fastapi import FastAPI, Request, Response
from loguru import logger

from ledger_bot.api.routes import router
from ledger_bot.config import get_settings

LOG_FORMAT = "{time:HH:mm:ss} | {level:<7} | {message}"

settings = get_settings()


def setup_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)


setup_logging(settings.log_level)

app = FastAPI(title="Shared Ledger", version="0.1.0")
app.include_router(router)


@app.middleware("http")
async def access_log(request: Request, call_next):
    response: Response = await call_next(request)
    logger.info("{} {} -> {}", request.method, request.url.path, response.status_code)
    return response


@app.on_event("startup")
async def run_bot():
    if not settings.telegram_bot_token:
        logger.warning("No TELEGRAM_BOT_TOKEN; serving the HTTP API only")
        return

    from ledger_bot.bot.handler import BOT_COMMANDS, build_bot_app

    bot = build_bot_app(settings)
    await bot.initialize()
    await bot.start()
    await bot.updater.start_polling(drop_pending_updates=True)
    await bot.bot.set_my_commands(BOT_COMMANDS)
    app.state.bot = bot
    logger.info("Ledger bot polling as @{}", bot.bot.username)


@app.on_event("shutdown")
async def stop_bot():
    bot = getattr(app.state, "bot", None)
    if bot is None:
        return
    await bot.updater.stop()
    await bot.stop()
    await bot.shutdown()
    logger.info("Ledger bot stopped")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000)
