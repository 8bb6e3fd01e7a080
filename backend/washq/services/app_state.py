"""
Process-wide washQ services, built once in the application lifespan.
"""

from typing import Optional

from washq.core.config import Settings, get_settings
from washq.core.logging import get_logger
from washq.infrastructure.document_store import DocumentStore
from washq.infrastructure.memory_store import MemoryDocumentStore
from washq.services.booking_coordinator import BookingCoordinator
from washq.services.cache_service import invalidate_machine_cache
from washq.services.feedback_service import FeedbackService
from washq.services.identity_service import IdentityProvider, StoreIdentityProvider
from washq.services.interfaces.lock import LockStrategy
from washq.services.machine_registry import MachineRegistry
from washq.services.notification_watcher import NotificationCenter
from washq.services.qr_service import NullDecoder, QRDecoder
from washq.services.session_service import SessionService
from washq.services.strategy_factory import get_lock_strategy
from washq.services.wash_clock import WashClock

logger = get_logger(__name__)


def build_store(settings: Settings) -> DocumentStore:
    if settings.STORE_BACKEND == "memory":
        return MemoryDocumentStore()

    from washq.db.session import create_engine
    from washq.infrastructure.sql_store import SqlDocumentStore

    return SqlDocumentStore(create_engine(settings.DATABASE_URL))


class WashQ:

    def __init__(
        self,
        store: DocumentStore,
        locks: Optional[LockStrategy] = None,
        settings: Optional[Settings] = None,
        decoder: Optional[QRDecoder] = None,
        use_cache: bool = True,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.locks = locks or get_lock_strategy()
        self.decoder = decoder or NullDecoder()

        self.registry = MachineRegistry(store, self.locks)
        self.coordinator = BookingCoordinator(
            store, self.registry, self.locks,
            start_delay=self.settings.START_WASH_DELAY_SECONDS,
        )
        self.notifications = NotificationCenter(store, self.registry)
        self.feedback = FeedbackService(store)
        self.clock = WashClock(self.coordinator, self.settings.WASH_CLOCK_INTERVAL_SECONDS)

        self.use_cache = use_cache
        if use_cache:
            self.registry.add_listener(invalidate_machine_cache)

    def identity_provider(self) -> IdentityProvider:
        return StoreIdentityProvider(self.store, self.settings.MIN_PASSWORD_LENGTH)

    def new_session(self, identity: Optional[IdentityProvider] = None) -> SessionService:
        return SessionService(
            identity or self.identity_provider(),
            self.store,
            min_password_length=self.settings.MIN_PASSWORD_LENGTH,
            on_login=self.notifications.watch,
            on_logout=self.notifications.unwatch,
        )

    async def startup(self) -> None:
        create_schema = getattr(self.store, "create_schema", None)
        if self.settings.DB_CREATE_SCHEMA and create_schema is not None:
            await create_schema()

        machines = await self.registry.list()
        purged = await self.coordinator.purge_orphaned_bookings()
        logger.info("washq_ready", machines=len(machines), purged_bookings=purged)

        if self.settings.WASH_CLOCK_ENABLED:
            self.clock.start()

    async def shutdown(self) -> None:
        await self.clock.stop()
        await self.coordinator.drain()
        await self.store.close()
