import asyncio

from config import ContextFactory, Settings, configure_logging
from interfaces.common import ContextRegistry
from interfaces.telegram.handlers import create_telegram_bot


async def run(settings: Settings) -> None:
    factory = ContextFactory(settings)
    bot = create_telegram_bot(
        settings.telegram_token,
        ContextRegistry(factory),
        factory.passkey_setup_url,
    )
    try:
        await bot.polling(non_stop=True)
    finally:
        await bot.close_session()
        await factory.aclose()


def main() -> None:
    settings = Settings.from_env()
    if not settings.telegram_token:
        raise RuntimeError("TELEGRAM_TOKEN environment variable is not set.")

    configure_logging(settings)
    asyncio.run(run(settings))


if __name__ == "__main__":
    main()
