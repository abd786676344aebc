"""Application entry point and bootstrap.

This module initializes all components, wires dependencies, and runs the
bot until SIGINT or SIGTERM.
"""

import asyncio
import logging
import signal
import sys

from butler.archive import ArchivalQueue, MediaVault, MessageLog
from butler.config import BotConfig
from butler.dao import AccessDAO, GameDAO, MediaDAO
from butler.database import Database
from butler.enums import GameKind
from butler.games import GameSessionManager, TicTacToeEngine, WordGuessEngine
from butler.logging_filters import install_logging_filters
from butler.observability.error_log_file import setup_error_log_file
from butler.router.message_router import MessageRouter
from butler.security.access_registry import AccessRegistry
from butler.services.builtin_commands import BuiltinCommands
from butler.services.command_parser import CommandParser
from butler.services.command_registry import CommandRegistry
from butler.transport.base import Transport
from butler.transport.telegram import TelegramTransport

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

# Suppress verbose HTTP request logs from telegram bot
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("telegram").setLevel(logging.WARNING)


class Application:
    """Main application container.

    Holds every component and manages their startup and shutdown order.
    """

    def __init__(self, config: BotConfig, transport: Transport | None = None):
        self.config = config
        self.transport = transport

        self.database: Database | None = None
        self.access_dao: AccessDAO | None = None
        self.game_dao: GameDAO | None = None
        self.media_dao: MediaDAO | None = None

        self.registry: AccessRegistry | None = None
        self.games: GameSessionManager | None = None
        self.message_log: MessageLog | None = None
        self.media_vault: MediaVault | None = None
        self.archive_queue: ArchivalQueue | None = None
        self.commands: CommandRegistry | None = None
        self.builtins: BuiltinCommands | None = None
        self.router: MessageRouter | None = None

        self._stop_event = asyncio.Event()
        self._shutdown_started = False

    async def setup(self) -> None:
        """Initialize all components with dependency injection."""
        logger.info("Setting up application components...")
        config = self.config

        setup_error_log_file(config)
        logging.getLogger().setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

        self.database = Database(config.resolved_database_url())
        if config.auto_create_tables:
            await self.database.init_db()
            logger.info("Database initialized (auto_create_tables=true)")
        else:
            logger.info(
                "Database initialized (auto_create_tables=false; relying on Alembic migrations)"
            )

        self.access_dao = AccessDAO(self.database)
        self.game_dao = GameDAO(self.database)
        self.media_dao = MediaDAO(self.database)

        self.registry = AccessRegistry(self.access_dao, self.game_dao)
        await self.registry.load()
        if config.owner_identity and self.registry.owner is None:
            await self.registry.set_owner(config.owner_identity)
            logger.info("Owner recorded from configuration")
        elif config.owner_identity and self.registry.owner != config.owner_identity:
            logger.warning("Configured owner differs from the persisted owner; keeping persisted")
        if self.registry.owner is None:
            logger.warning("No owner configured; only granted commands will run")

        if self.transport is None:
            if not config.telegram_bot_token:
                raise RuntimeError("telegram_bot_token is not configured")
            self.transport = TelegramTransport(config.telegram_bot_token)

        if config.archive_enabled:
            self.message_log = MessageLog(config.archive_path)
            self.media_vault = MediaVault(
                config.media_path, self.media_dao, max_size_bytes=config.max_media_size_bytes
            )
            self.archive_queue = ArchivalQueue(
                self.message_log,
                self.media_vault,
                downloader=self.transport.download_media,
                drain_interval=config.archive_drain_interval_seconds,
                batch_size=config.archive_batch_size,
                max_length=config.archive_max_queue_length,
                max_retries=config.archive_max_retries,
            )

        if config.enable_games:
            self.games = GameSessionManager(
                self.registry,
                self.game_dao,
                {
                    GameKind.TICTACTOE: TicTacToeEngine(),
                    GameKind.WORD_GUESS: WordGuessEngine(
                        max_wrong_guesses=config.word_guess_max_wrong_guesses
                    ),
                },
                ai_move_delay=config.game_ai_move_delay_seconds,
                join_window=config.word_race_join_window_seconds,
                turn_timeout=config.word_race_turn_timeout_seconds,
                history_limit=config.game_history_limit,
            )

        self.commands = CommandRegistry()
        self.builtins = BuiltinCommands(
            self.registry,
            self.commands,
            prefix=config.command_prefix,
            games=self.games,
            message_log=self.message_log,
            media_vault=self.media_vault,
            archive_queue=self.archive_queue,
            search_limit=config.archive_search_limit,
        )
        self.builtins.register()

        self.router = MessageRouter(
            self.transport,
            self.registry,
            self.commands,
            CommandParser(config.command_prefix),
            games=self.games,
            archive=self.archive_queue,
            max_concurrent=config.max_concurrent_commands,
            shutdown_timeout=config.shutdown_timeout_seconds,
            indicator_interval=config.processing_indicator_interval_seconds,
            archive_media=config.auto_download_media,
        )
        self.builtins.attach_router(self.router)
        if self.games is not None:
            self.games.set_sender(self.router.reply)

        logger.info(
            "Application setup complete (%d commands, games=%s, archive=%s)",
            len(self.commands.list_commands()),
            config.enable_games,
            config.archive_enabled,
        )

    async def start(self) -> None:
        """Start background services and begin receiving messages."""
        if self.archive_queue is not None:
            await self.archive_queue.start()
        if self.games is not None:
            await self.games.resume()
        await self.transport.start(self.router.handle)
        logger.info("Butler is running")

    async def shutdown(self) -> None:
        """Stop components in dependency order.

        Intake stops first and already-received messages reach the router.
        The router then drains, game timers are cancelled and the archive is
        flushed before the database closes. The transport is released last.
        """
        if self._shutdown_started:
            return
        self._shutdown_started = True
        logger.info("Initiating graceful shutdown...")

        if self.transport:
            try:
                await self.transport.stop_intake()
            except Exception:
                logger.exception("Transport did not stop receiving cleanly")

        if self.router:
            await self.router.stop()
            logger.info("Router stopped")

        if self.games:
            await self.games.shutdown()

        if self.archive_queue:
            await self.archive_queue.stop()

        if self.database:
            await self.database.close()
            logger.info("Database connection closed")

        if self.transport:
            try:
                await self.transport.stop()
            except Exception:
                logger.exception("Transport did not stop cleanly")

        self._stop_event.set()
        logger.info("Graceful shutdown complete")

    def request_stop(self) -> None:
        self._stop_event.set()

    async def wait_for_stop(self) -> None:
        await self._stop_event.wait()

    def setup_signal_handlers(self) -> None:
        """Register SIGINT and SIGTERM handlers that request shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(sig: signal.Signals) -> None:
            logger.info("Received signal %s, initiating shutdown...", sig.name)
            self.request_stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

        logger.info("Signal handlers registered")


async def main(config: BotConfig | None = None) -> None:
    """Run the bot until a shutdown signal arrives."""
    install_logging_filters()
    logger.info("Starting Butler...")

    app: Application | None = None
    try:
        if config is None:
            config = BotConfig.from_json_file()
        logger.info("Configuration loaded")

        app = Application(config)
        await app.setup()
        app.setup_signal_handlers()
        await app.start()
        await app.wait_for_stop()
    except Exception as e:
        logger.exception("Application error: %s", e)
        raise
    finally:
        if app is not None:
            await app.shutdown()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
