from config import ContextFactory, Settings, configure_logging
from interfaces.common import ContextRegistry
from interfaces.discord.handlers import create_discord_bot


def main() -> None:
    settings = Settings.from_env()
    if not settings.discord_token:
        raise RuntimeError("DISCORD_TOKEN environment variable is not set.")

    configure_logging(settings)
    factory = ContextFactory(settings)

    bot = create_discord_bot(ContextRegistry(factory))
    bot.run(settings.discord_token)


if __name__ == "__main__":
    main()
