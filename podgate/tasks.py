# podgate/tasks.py
"""
Recurring tasks.

Two tasks run on a fixed cadence, independently of each other:

- NotificationProcessor: turns verified payment notifications into grants
- ExpirySweeper: removes grants whose window has elapsed

Within a tick every notification / resource is handled independently
(fanned out over a thread pool); a failure affects only that item, and
whatever was skipped is picked up again on the next tick since all
state is re-read from storage each time.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .config import Config
from .directory import ResourceDirectory
from .errors import NotFoundError, ParseFailure
from .grants import grant_access, revoke_expired
from .notifications import Notification
from .offers import Offer, OfferCatalog
from .verifier import NotificationVerifier, RejectionReason

logger = logging.getLogger(__name__)


class ItemStatus(Enum):
    """What happened to one notification or resource during a tick."""
    GRANTED = "granted"        # notification verified, grant written, notification deleted
    REJECTED = "rejected"      # verification failed
    DISCARDED = "discarded"    # malformed payment notification, deleted
    REVOKED = "revoked"        # expired grants removed from a permission document
    UNCHANGED = "unchanged"    # permission document had nothing to revoke
    SKIPPED = "skipped"        # nothing to do (gone, not a payment, unreadable, no permission document)
    FAILED = "failed"          # error; retried next tick


@dataclass
class ItemOutcome:
    """Tagged result for one item of a tick."""
    item: str
    status: ItemStatus
    detail: str = ""
    count: int = 0


@dataclass
class TickReport:
    """Outcomes of one tick of a recurring task."""
    task: str
    outcomes: List[ItemOutcome] = field(default_factory=list)
    elapsed: float = 0.0

    def by_status(self, status: ItemStatus) -> List[ItemOutcome]:
        return [o for o in self.outcomes if o.status == status]

    def total(self, status: ItemStatus) -> int:
        """Sum of counts for a status (number of items if counts are unused)."""
        return sum(o.count or 1 for o in self.by_status(status))

    def summary(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for outcome in self.outcomes:
            counts[outcome.status.value] = counts.get(outcome.status.value, 0) + 1
        return counts


def fan_out(
    items: Sequence[str],
    fn: Callable[[str], ItemOutcome],
    max_workers: int = 8,
) -> List[ItemOutcome]:
    """
    Run fn on every item concurrently and wait for all of them.

    Exceptions are logged and turned into FAILED outcomes; they never
    escape. Outcomes are returned in completion order.
    """
    if not items:
        return []

    outcomes = []
    with ThreadPoolExecutor(max_workers=min(max_workers, len(items))) as pool:
        futures = {pool.submit(fn, item): item for item in items}
        for future in as_completed(futures):
            item = futures[future]
            try:
                outcomes.append(future.result())
            except Exception as e:
                logger.exception(f"Failed to process {item}")
                outcomes.append(ItemOutcome(item, ItemStatus.FAILED, str(e)))
    return outcomes


class RecurringTask:
    """
    Runs a tick function on a fixed wall-clock cadence.

    Each tick runs on its own thread. If a tick is still running when the
    next one is due, the new one is skipped rather than run concurrently.

    Usage:
        task = RecurringTask("sweep", sweeper.tick, interval=60)
        task.start()
        ...
        task.stop()
    """

    def __init__(self, name: str, tick: Callable[[], Any], interval: float = 60):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.tick = tick
        self.interval = interval
        self._tick_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def in_progress(self) -> bool:
        return self._tick_lock.locked()

    def run_once(self) -> Any:
        """
        Run one tick now.

        Returns the tick's result, or None if a tick was already running
        or the tick raised.
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.warning(f"[{self.name}] Previous tick still running, skipping")
            return None

        try:
            return self.tick()
        except Exception:
            logger.exception(f"[{self.name}] Tick failed")
            return None
        finally:
            self._tick_lock.release()

    def _dispatch(self) -> threading.Thread:
        thread = threading.Thread(target=self.run_once, name=f"{self.name}-tick")
        thread.daemon = True
        thread.start()
        return thread

    def _loop(self):
        next_run = time.monotonic()
        while not self._stop.is_set():
            self._dispatch()
            next_run += self.interval
            now = time.monotonic()
            if next_run < now:
                # Missed slots are dropped, not replayed
                missed = int((now - next_run) // self.interval) + 1
                next_run += missed * self.interval
            self._stop.wait(next_run - now)

    def start(self) -> threading.Thread:
        """Start the timer in a background thread. The first tick runs immediately."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError(f"Task {self.name} is already running")
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=f"{self.name}-timer")
        self._thread.daemon = True
        self._thread.start()
        logger.info(f"[{self.name}] Scheduled every {self.interval:g}s")
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop scheduling new ticks. A tick in progress is not interrupted."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationProcessor:
    """
    Processes the owner's inbox.

    For each payment notification: verify it; on success add a grant to
    the resource's permission document and write it back; then delete
    the notification. Rejected notifications and payment notifications
    with malformed fields are deleted too. Entries that are not payment
    notifications, or not Turtle at all, are left for their own readers.

    Args:
        directory: ResourceDirectory for the owner's pod
        catalog: OfferCatalog reading the owner's offers
        verifier: NotificationVerifier
        config: Config (container URLs, worker count, mismatch policy)
    """

    def __init__(
        self,
        directory: ResourceDirectory,
        catalog: OfferCatalog,
        verifier: NotificationVerifier,
        config: Config,
    ):
        self.directory = directory
        self.catalog = catalog
        self.verifier = verifier
        self.config = config
        self._resource_locks: Dict[str, threading.Lock] = {}
        self._resource_locks_guard = threading.Lock()

    def _resource_lock(self, resource_url: str) -> threading.Lock:
        """Lock serializing read-modify-write of one permission document."""
        with self._resource_locks_guard:
            return self._resource_locks.setdefault(resource_url, threading.Lock())

    def _deletes_on(self, reason: RejectionReason) -> bool:
        if reason == RejectionReason.OFFER_MISMATCH:
            return not self.config.retain_offer_mismatches
        return True

    def _discard(self, url: str, error: Exception) -> ItemOutcome:
        logger.warning(f"Discarding malformed payment notification {url}: {error}")
        self.directory.delete(url)
        return ItemOutcome(url, ItemStatus.DISCARDED, str(error))

    def process_notification(
        self,
        url: str,
        catalog: Mapping[str, Offer],
        now: Optional[datetime] = None,
    ) -> ItemOutcome:
        """Handle a single inbox entry."""
        now = now or _utcnow()

        try:
            doc = self.directory.fetch_graph(url)
        except ParseFailure as e:
            # Other applications share the inbox
            logger.warning(f"Leaving unreadable inbox entry {url}: {e}")
            return ItemOutcome(url, ItemStatus.SKIPPED, "unreadable")
        if doc is None:
            return ItemOutcome(url, ItemStatus.SKIPPED, "notification is gone")
        if not Notification.is_payment(doc):
            logger.debug(f"Leaving {url}: not a payment notification")
            return ItemOutcome(url, ItemStatus.SKIPPED, "not a payment notification")

        try:
            notification = Notification.from_graph(doc)
        except ParseFailure as e:
            return self._discard(url, e)

        result = self.verifier.verify(notification, catalog)
        if not result.accepted:
            delete = self._deletes_on(result.reason)
            logger.warning(
                f"Rejected notification {url}: reason={result.reason.value} "
                f"sender={notification.sender_webid} resource={notification.resource_url} "
                f"tx={notification.transaction_hash} deleted={delete} ({result.detail})"
            )
            if delete:
                self.directory.delete(url)
            return ItemOutcome(url, ItemStatus.REJECTED, result.reason.value)

        request = result.request
        with self._resource_lock(request.resource_url):
            acl = self.directory.fetch_permission_document(request.resource_url)
            if acl is None:
                raise NotFoundError(f"{request.resource_url} has no permission document")

            grant_access(
                acl,
                grantee_webid=request.grantee_webid,
                resource_url=request.resource_url,
                duration_minutes=request.duration_minutes,
                now=now,
            )
            self.directory.write_permission_document(request.resource_url, acl)
        self.directory.delete(url)
        return ItemOutcome(url, ItemStatus.GRANTED, request.grantee_webid, count=1)

    def tick(self, now: Optional[datetime] = None) -> TickReport:
        """Process every notification currently in the inbox."""
        started = time.time()
        now = now or _utcnow()
        report = TickReport("process")

        logger.info(f"Fetching inbox {self.config.inbox_url}")
        notifications = self.directory.list_container(self.config.inbox_url)
        if not notifications:
            logger.info("Inbox is empty")
            report.elapsed = time.time() - started
            return report

        catalog = self.catalog.load(self.config.offers_url)
        logger.info(f"Processing {len(notifications)} notifications against {len(catalog)} offers")

        report.outcomes = fan_out(
            notifications,
            lambda url: self.process_notification(url, catalog, now),
            max_workers=self.config.max_workers,
        )
        report.elapsed = time.time() - started

        granted = len(report.by_status(ItemStatus.GRANTED))
        if granted:
            logger.info(f"Processed {granted} access requests successfully")
        else:
            logger.info("There were no valid access requests")
        logger.info(f"Processing finished in {report.elapsed:.2f}s: {report.summary()}")
        return report


class ExpirySweeper:
    """
    Revokes expired grants below the owner's private container.

    Args:
        directory: ResourceDirectory for the owner's pod
        config: Config (private container URL, worker count)
    """

    def __init__(self, directory: ResourceDirectory, config: Config):
        self.directory = directory
        self.config = config

    def sweep_resource(self, resource_url: str, now: Optional[datetime] = None) -> ItemOutcome:
        """Revoke expired grants in one resource's permission document."""
        now = now or _utcnow()

        acl = self.directory.fetch_permission_document(resource_url)
        if acl is None:
            return ItemOutcome(resource_url, ItemStatus.SKIPPED, "no permission document")

        _, revoked = revoke_expired(acl, now)
        if not revoked:
            return ItemOutcome(resource_url, ItemStatus.UNCHANGED)

        self.directory.write_permission_document(resource_url, acl)
        logger.info(f"Revoked {revoked} expired grants on {resource_url}")
        return ItemOutcome(resource_url, ItemStatus.REVOKED, count=revoked)

    def tick(self, now: Optional[datetime] = None) -> TickReport:
        """Sweep every resource below the private container."""
        started = time.time()
        now = now or _utcnow()

        resources = self.directory.walk(self.config.private_url)
        report = TickReport(
            "sweep",
            fan_out(
                resources,
                lambda url: self.sweep_resource(url, now),
                max_workers=self.config.max_workers,
            ),
        )
        report.elapsed = time.time() - started

        logger.info(
            f"Deleted {report.total(ItemStatus.REVOKED)} expired grants "
            f"across {len(resources)} resources in {report.elapsed:.2f}s"
        )
        return report
