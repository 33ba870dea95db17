from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import logging

from filevault.accounts.manager import AccountManager
from filevault.accounts.storage import InMemoryStorage, JSONStorage
from filevault.config import Settings
from filevault.gateway import AccessGateway
from filevault.notifications.bus import ConnectionRegistry, NotificationBus
from filevault.notifications.session import ConnectionSession, LivenessMonitor
from filevault.sharing.ledger import ShareLedger
from filevault.sharing.storage import InMemoryGrantStore, JSONGrantStore
from filevault.storage.blobs import FilesystemBlobStore, InMemoryBlobStore
from filevault.storage.records import InMemoryStore, PersistentStore

logger = logging.getLogger(__name__)


@dataclass
class VaultApp:
    """Every component of one running vault, built once and closed once."""

    settings: Settings
    accounts: AccountManager
    ledger: ShareLedger
    bus: NotificationBus
    gateway: AccessGateway
    monitor: LivenessMonitor

    def session(self, transport) -> ConnectionSession:
        """Wrap a freshly accepted client transport for the notification bus."""
        return ConnectionSession(self.bus, transport)

    def start(self) -> "VaultApp":
        self.monitor.start()
        return self

    def close(self) -> None:
        self.monitor.stop()
        self.bus.close()
        logger.info("vault closed")

    def __enter__(self) -> "VaultApp":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.close()


def create_app(settings: Optional[Settings] = None) -> VaultApp:
    """Factory so the CLI, tests and any server front end share the same wiring."""
    settings = settings or Settings.from_env()

    if settings.backend == "persistent":
        data_dir = Path(settings.data_dir)
        records = PersistentStore.in_dir(data_dir)
        grants = JSONGrantStore(data_dir / "grants.json")
        users = JSONStorage(data_dir / "users.json")
        blobs = FilesystemBlobStore(data_dir)
    else:
        records = InMemoryStore()
        grants = InMemoryGrantStore()
        users = InMemoryStorage()
        blobs = InMemoryBlobStore()

    accounts = AccountManager(users)
    ledger = ShareLedger(grants, records, accounts)
    bus = NotificationBus(ConnectionRegistry(), queue_size=settings.queue_size)
    gateway = AccessGateway(
        records,
        blobs,
        ledger,
        bus,
        max_upload_size=settings.max_upload_size,
        access_log_limit=settings.access_log_limit,
        compensation_attempts=settings.compensation_attempts,
    )
    monitor = LivenessMonitor(bus, interval=settings.ping_interval, timeout=settings.ping_timeout)
    logger.info("vault ready (backend=%s)", settings.backend)
    return VaultApp(
        settings=settings,
        accounts=accounts,
        ledger=ledger,
        bus=bus,
        gateway=gateway,
        monitor=monitor,
    )
