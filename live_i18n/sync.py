"""
Change propagation for the translation store.

Two channels implement the same subscribe contract:

- ``InProcessChannel`` fires synchronously from the store's mutation hook and
  reaches observers living in the writer's process.
- ``VersionPollingChannel`` re-reads the persisted version marker on a fixed
  interval and reaches observers whose writer is another process sharing the
  same snapshot files.

``SyncBroadcaster`` fans both into one set of observers and delivers each
version at most once.
"""
import asyncio
from typing import Callable, List, Optional

from live_i18n.logging_config import get_logger
from live_i18n.store import TranslationStore

logger = get_logger("sync")

CHANGE_EVENT_NAME = "localizations-updated"
DEFAULT_POLL_INTERVAL_SECONDS = 0.5

Subscriber = Callable[[int], None]


class ChangeChannel:
    """Subscribe/notify contract shared by every delivery path."""

    name = "channel"

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback(version)``. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    def _publish(self, version: int) -> None:
        for callback in list(self._subscribers):
            try:
                callback(version)
            except Exception:
                logger.exception("Subscriber %r of %s failed for version %d", callback, self.name, version)


class InProcessChannel(ChangeChannel):
    """Immediate notification for observers in the same process as the writer."""

    name = CHANGE_EVENT_NAME

    def __init__(self, store: TranslationStore):
        super().__init__()
        self.store = store
        self._attached = False

    def start(self) -> None:
        if not self._attached:
            self.store.add_mutation_hook(self.notify)
            self._attached = True

    async def stop(self) -> None:
        if self._attached:
            self.store.remove_mutation_hook(self.notify)
            self._attached = False

    def notify(self, version: int) -> None:
        logger.debug("%s: version %d", self.name, version)
        self._publish(version)


class VersionPollingChannel(ChangeChannel):
    """
    Detects changes made by other processes by polling the persisted version marker.

    Worst-case staleness is one poll interval. ``poll_once`` can be awaited
    directly to run a single tick.
    """

    name = "version-poll"

    def __init__(self, store: TranslationStore, interval: float = DEFAULT_POLL_INTERVAL_SECONDS):
        super().__init__()
        self.store = store
        self.interval = interval
        self._last_seen: Optional[int] = None
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._last_seen = self.store.read_persisted_version()
        self._task = asyncio.get_running_loop().create_task(self._run(), name="live-i18n-version-poll")
        logger.debug("Version polling started every %.3fs", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    def poll_once(self) -> Optional[int]:
        """
        Run one poll tick.

        Returns:
            The new version if a change was detected, otherwise None.
        """
        persisted = self.store.read_persisted_version()
        if persisted is None or persisted == self._last_seen:
            return None
        self._last_seen = persisted
        self.store.sync_from_disk()
        self._publish(persisted)
        return persisted

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.poll_once()
            except Exception:
                logger.exception("Version poll tick failed")


class SyncBroadcaster:
    """
    Delivers every store version to every observer exactly once, whichever
    channel saw it first. Observers must re-fetch the data they need (for the
    preview, the current-locale and English tables) rather than assume a delta.
    """

    def __init__(self, channels: List[ChangeChannel]):
        self.channels = channels
        self._observers: List[Subscriber] = []
        self._unsubscribers: List[Callable[[], None]] = []
        self._last_delivered = 0
        self._running = False

    @classmethod
    def for_store(cls, store: TranslationStore,
                  poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS) -> "SyncBroadcaster":
        return cls([InProcessChannel(store), VersionPollingChannel(store, poll_interval)])

    @property
    def last_delivered_version(self) -> int:
        return self._last_delivered

    def subscribe(self, observer: Subscriber) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def start(self) -> None:
        if self._running:
            return
        for channel in self.channels:
            self._unsubscribers.append(channel.subscribe(self._deliver))
            channel.start()
        self._running = True

    async def stop(self) -> None:
        for channel in self.channels:
            await channel.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._running = False

    async def __aenter__(self) -> "SyncBroadcaster":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def _deliver(self, version: int) -> None:
        if version <= self._last_delivered:
            return
        self._last_delivered = version
        for observer in list(self._observers):
            try:
                observer(version)
            except Exception:
                logger.exception("Observer %r failed for version %d", observer, version)
