from __future__ import annotations

import asyncio

from aiogram import Bot, Dispatcher

from settleup.config import get_settings
from settleup.db.repo import Database, SettleUpRepository, set_global_repository
from settleup.handlers.settlements import settlements_router
from settleup.logging import configure_logging, get_logger


async def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    bot = Bot(token=settings.bot_token)
    dp = Dispatcher()
    db = Database(settings.database_url)
    await db.connect()
    repo = SettleUpRepository(db, app_env=settings.app_env)

    dp.include_router(settlements_router)

    set_global_repository(repo)

    log = get_logger(__name__)
    log.info("bot.start", env=settings.app_env)
    try:
        await dp.start_polling(bot)
    finally:
        await db.close()
        await bot.session.close()
        log.info("bot.stop")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
