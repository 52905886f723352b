"""
Service container for dependency injection and initialization.

This module centralizes service creation and wiring so that server.py and
the tests build the same object graph.

Usage:
    container = ServiceContainer(config, notifier=notifier)
    await container.initialize()

    # Access services
    lobby_service = container.lobby_service
    player_repo = container.player_repo
"""

import logging
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import config as settings
from infrastructure.schema_manager import SchemaManager

# Repositories
from repositories.match_repository import MatchRepository
from repositories.moderation_repository import ModerationRepository
from repositories.player_repository import PlayerRepository

if TYPE_CHECKING:
    from services.lobby_registry import LobbyRegistry
    from services.lobby_service import LobbyService
    from services.notifier import LobbyNotifier
    from services.presence_service import PresenceProvider
    from services.timer_service import TimerService

logger = logging.getLogger("lobby_server.infrastructure.container")


@dataclass
class RepositoryContainer:
    """Container for all repositories."""

    player: PlayerRepository | None = None
    match: MatchRepository | None = None
    moderation: ModerationRepository | None = None


@dataclass
class ServiceConfig:
    """Configuration for service initialization."""

    # Database
    db_path: str = settings.DB_PATH

    # Lobby settings
    lobby_code_length: int = settings.LOBBY_CODE_LENGTH
    lobby_min_players: int = settings.LOBBY_MIN_PLAYERS
    lobby_default_max_players: int = settings.LOBBY_DEFAULT_MAX_PLAYERS
    lobby_max_players_limit: int = settings.LOBBY_MAX_PLAYERS_LIMIT
    lobby_overflow_slots: int = settings.LOBBY_OVERFLOW_SLOTS
    default_rounds_to_win: int = settings.DEFAULT_ROUNDS_TO_WIN
    disconnect_grace_seconds: float = settings.DISCONNECT_GRACE_SECONDS
    host_disconnect_grace_seconds: float = settings.HOST_DISCONNECT_GRACE_SECONDS

    # Market settings
    market_starting_budget: int = settings.MARKET_STARTING_BUDGET
    market_bid_window_seconds: float = settings.MARKET_BID_WINDOW_SECONDS
    market_bid_extension_seconds: float = settings.MARKET_BID_EXTENSION_SECONDS

    # Purge settings
    purge_countdown_seconds: float = settings.PURGE_COUNTDOWN_SECONDS
    purge_elimination_interval_seconds: float = settings.PURGE_ELIMINATION_INTERVAL_SECONDS
    purge_immunity_enabled: bool = settings.PURGE_IMMUNITY_ENABLED

    # Rating settings
    default_elo: int = settings.DEFAULT_ELO
    elo_k_factor: float = settings.ELO_K_FACTOR

    # Moderation and storage
    timeout_max_minutes: int = settings.TIMEOUT_MAX_MINUTES
    finalize_retry_delays: list[float] = field(default_factory=lambda: list(settings.FINALIZE_RETRY_DELAYS))

    # Transport
    cors_origins: list[str] = field(default_factory=lambda: list(settings.CORS_ORIGINS))
    intent_rate_limit: int = settings.INTENT_RATE_LIMIT
    intent_rate_window: int = settings.INTENT_RATE_WINDOW

    # Presence collaborator (optional)
    discord_bot_token: str | None = settings.DISCORD_BOT_TOKEN
    discord_guild_id: int | None = settings.DISCORD_GUILD_ID
    discord_voice_channel_id: int | None = settings.DISCORD_VOICE_CHANNEL_ID

    # Seed for lobby codes, draft coinflips and purge selection (None = unpredictable)
    rng_seed: int | None = None


class ServiceContainer:
    """
    Central container for all application services.

    Handles proper initialization order and dependency injection.

    Example:
        container = ServiceContainer(config)
        await container.initialize()

        # Services are now available
        lobby_service = container.lobby_service
    """

    def __init__(
        self,
        config: ServiceConfig | None = None,
        notifier: "LobbyNotifier | None" = None,
        presence: "PresenceProvider | None" = None,
    ):
        """
        Initialize the container with configuration.

        Args:
            config: Service configuration (uses defaults if None)
            notifier: Event fan-out for lobby events (logs only if None)
            presence: Voice presence collaborator (built from config if None)
        """
        self.config = config or ServiceConfig()
        self._initialized = False
        self._repos = RepositoryContainer()
        self._notifier = notifier
        self._presence = presence
        self._services: dict[str, Any] = {}

    @property
    def is_initialized(self) -> bool:
        """Check if container has been initialized."""
        return self._initialized

    async def initialize(self) -> None:
        """
        Initialize all services in correct order.

        This method is idempotent - calling it multiple times has no effect.
        """
        if self._initialized:
            logger.debug("ServiceContainer already initialized, skipping")
            return

        logger.info("Initializing ServiceContainer...")

        self._init_database()
        self._init_repositories()
        self._init_core_services()
        self._init_team_formation_services()
        self._init_lobby_service()

        await self._services["presence"].start()

        self._initialized = True
        logger.info("ServiceContainer initialization complete")

    async def shutdown(self) -> None:
        """Cancel timers and disconnect collaborators."""
        lobby_service = self._services.get("lobby")
        if lobby_service is not None:
            await lobby_service.shutdown()
        logger.info("ServiceContainer shut down")

    def _init_database(self) -> None:
        """Initialize database and run migrations."""
        logger.debug(f"Initializing database at {self.config.db_path}")

        schema_manager = SchemaManager(self.config.db_path)
        schema_manager.initialize()

    def _init_repositories(self) -> None:
        """Initialize all repositories."""
        logger.debug("Initializing repositories")

        db_path = self.config.db_path
        self._repos.player = PlayerRepository(db_path)
        self._repos.match = MatchRepository(db_path)
        self._repos.moderation = ModerationRepository(db_path)

    def _init_core_services(self) -> None:
        """Registry, timers, fan-out and presence."""
        logger.debug("Initializing core services")

        from services.lobby_registry import LobbyRegistry
        from services.notifier import LoggingNotifier
        from services.timer_service import TimerService

        cfg = self.config
        self._services["rng"] = random.Random(cfg.rng_seed)
        registry = LobbyRegistry(code_length=cfg.lobby_code_length, rng=self._services["rng"])
        self._services["registry"] = registry
        self._services["timers"] = TimerService(registry)
        self._services["notifier"] = self._notifier or LoggingNotifier()
        self._services["presence"] = self._presence or self._build_presence()

    def _build_presence(self) -> "PresenceProvider":
        from services.presence_service import (
            AlwaysPresentProvider,
            DiscordPresenceProvider,
            create_discord_client,
        )

        cfg = self.config
        if cfg.discord_bot_token and cfg.discord_guild_id:
            logger.info("Voice presence checks use Discord")
            return DiscordPresenceProvider(
                client=create_discord_client(),
                token=cfg.discord_bot_token,
                guild_id=cfg.discord_guild_id,
                voice_channel_id=cfg.discord_voice_channel_id,
            )
        logger.info("No Discord credentials configured; every player is reported present")
        return AlwaysPresentProvider()

    def _init_team_formation_services(self) -> None:
        """Phase machine, membership and the draft, market and purge engines."""
        logger.debug("Initializing team formation services")

        from domain.services.draft_service import DraftService
        from domain.services.market_service import MarketService
        from domain.services.purge_service import PurgeService
        from services.draft_engine import DraftEngine
        from services.market_engine import MarketEngine
        from services.membership_service import MembershipService
        from services.phase_service import PhaseService
        from services.purge_engine import PurgeEngine

        cfg = self.config
        rng = self._services["rng"]
        notifier = self._services["notifier"]
        timers = self._services["timers"]

        phase_service = PhaseService(min_players=cfg.lobby_min_players)
        self._services["phase"] = phase_service

        membership = MembershipService(
            registry=self._services["registry"],
            notifier=notifier,
            player_repo=self._repos.player,
            moderation_repo=self._repos.moderation,
            overflow_slots=cfg.lobby_overflow_slots,
            default_elo=cfg.default_elo,
            timeout_max_minutes=cfg.timeout_max_minutes,
        )
        self._services["membership"] = membership

        self._services["draft_engine"] = DraftEngine(DraftService(rng=rng), phase_service)

        self._services["market_engine"] = MarketEngine(
            market_service=MarketService(starting_budget=cfg.market_starting_budget),
            phase_service=phase_service,
            timers=timers,
            notifier=notifier,
            bid_window_seconds=cfg.market_bid_window_seconds,
            bid_extension_seconds=cfg.market_bid_extension_seconds,
        )

        self._services["purge_engine"] = PurgeEngine(
            purge_service=PurgeService(rng=rng),
            phase_service=phase_service,
            membership=membership,
            moderation_repo=self._repos.moderation,
            timers=timers,
            notifier=notifier,
            countdown_seconds=cfg.purge_countdown_seconds,
            elimination_interval_seconds=cfg.purge_elimination_interval_seconds,
            immunity_enabled=cfg.purge_immunity_enabled,
        )

    def _init_lobby_service(self) -> None:
        """Match finalizer and the lobby facade."""
        logger.debug("Initializing lobby service")

        from rating_system import EloRatingSystem
        from services.lobby_service import LobbyService
        from services.match_finalizer import MatchFinalizer

        cfg = self.config
        self._services["finalizer"] = MatchFinalizer(
            player_repo=self._repos.player,
            match_repo=self._repos.match,
            rating_system=EloRatingSystem(k_factor=cfg.elo_k_factor, default_rating=cfg.default_elo),
            retry_delays=cfg.finalize_retry_delays,
        )

        self._services["lobby"] = LobbyService(
            registry=self._services["registry"],
            notifier=self._services["notifier"],
            timers=self._services["timers"],
            membership=self._services["membership"],
            phase_service=self._services["phase"],
            draft_engine=self._services["draft_engine"],
            market_engine=self._services["market_engine"],
            purge_engine=self._services["purge_engine"],
            finalizer=self._services["finalizer"],
            presence=self._services["presence"],
            default_max_players=cfg.lobby_default_max_players,
            max_players_limit=cfg.lobby_max_players_limit,
            default_rounds_to_win=cfg.default_rounds_to_win,
            disconnect_grace_seconds=cfg.disconnect_grace_seconds,
            host_disconnect_grace_seconds=cfg.host_disconnect_grace_seconds,
        )

    # =========================================================================
    # Service accessors
    # =========================================================================

    @property
    def player_repo(self) -> PlayerRepository:
        """Get player repository."""
        return self._repos.player

    @property
    def match_repo(self) -> MatchRepository:
        """Get match repository."""
        return self._repos.match

    @property
    def moderation_repo(self) -> ModerationRepository:
        return self._repos.moderation

    @property
    def registry(self) -> "LobbyRegistry | None":
        return self._services.get("registry")

    @property
    def timers(self) -> "TimerService | None":
        return self._services.get("timers")

    @property
    def notifier(self) -> "LobbyNotifier | None":
        return self._services.get("notifier")

    @property
    def lobby_service(self) -> "LobbyService | None":
        """Get lobby service."""
        return self._services.get("lobby")
