"""弹性请求调度器：持久化优先级队列及其在网络可达时的单任务出队循环。

Resilient dispatcher.

A persistent priority queue of outbound calls plus the single-flight
loop that drains it while connectivity is reachable.

Failure handling by error class:

- transport (timeout, refused, resolve): the request goes back to
  pending and is held back until the next connectivity-driven cycle
  (connectivity restored, a successful switch or a manual `kick()`);
  enqueues and backoff timers of other requests do not release it
- protocol (non-2xx): retried after exponential backoff through the
  delay scheduler, until attempts run out
- serialization and anything unexpected: terminal

Every transition persists the full active set before its event is
published.
"""

from __future__ import annotations

import asyncio
import os
import time
import uuid
from contextlib import suppress
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from resilient_net.dispatch.queue import ActiveSet, QueueSnapshotStore
from resilient_net.errors import (
    CapacityError,
    DeliveryError,
    ErrorClass,
    StoreError,
    classify_error,
    is_connectivity_signal,
    is_retryable,
)
from resilient_net.events.types import (
    EventKind,
    ProcessingStarted,
    ProcessingStopped,
    QueueCapacityExceeded,
    QueueCleared,
    RequestCancelled,
    RequestCompleted,
    RequestExpired,
    RequestFailed,
    RequestQueued,
    RequestRetrying,
    RequestStarted,
)
from resilient_net.resilience.retry import RetryConfig, RetryPolicy
from resilient_net.resilience.scheduler import DelayScheduler
from resilient_net.telemetry.logger import LogContext, get_log_context, get_logger, set_log_context
from resilient_net.types.request import (
    PendingRequest,
    PriorityTier,
    RequestStatus,
    RequestTarget,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from resilient_net.connectivity.monitor import ConnectivityMonitor
    from resilient_net.events.bus import EventBus, Subscription
    from resilient_net.events.types import StateChanged, SwitchSucceeded
    from resilient_net.storage.backends import KeyValueStore
    from resilient_net.transport.http import HttpTransport

logger = get_logger("resilient_net.dispatch")

STORAGE_KEY = "resilient_api_queue"
DEFAULT_RETENTION_SECONDS = 24 * 60 * 60


@dataclass
class DispatcherConfig:
    """Configuration for the dispatcher.

    Attributes:
        capacity: Maximum size of the active set
        max_attempts: Attempts per request
        request_timeout: Timeout of one call in seconds
        pause: Pause between two dispatched calls in seconds
        retention: Age in seconds after which a request expires unattempted
        storage_key: Key of the persisted active set
        idempotency_header: Header carrying the completion token of
            `make_resilient_call` (empty string disables it)
        retry: Backoff schedule for protocol failures
    """

    capacity: int = 100
    max_attempts: int = 5
    request_timeout: float = 30.0
    pause: float = 0.1
    retention: float = DEFAULT_RETENTION_SECONDS
    storage_key: str = STORAGE_KEY
    idempotency_header: str = "Idempotency-Key"
    retry: RetryConfig = field(default_factory=RetryConfig.dispatch)

    @classmethod
    def from_env(cls) -> DispatcherConfig:
        """Create configuration from environment variables.

        Reads ``RESILIENT_NET_QUEUE_CAPACITY``, ``RESILIENT_NET_MAX_ATTEMPTS``,
        ``RESILIENT_NET_REQUEST_TIMEOUT_SECS``, ``RESILIENT_NET_QUEUE_RETENTION_HOURS``,
        ``RESILIENT_NET_QUEUE_KEY`` and the ``RESILIENT_NET_DISPATCH_RETRY_*``
        backoff variables.
        """
        max_attempts = int(os.getenv("RESILIENT_NET_MAX_ATTEMPTS", "5"))
        return cls(
            capacity=int(os.getenv("RESILIENT_NET_QUEUE_CAPACITY", "100")),
            max_attempts=max_attempts,
            request_timeout=float(os.getenv("RESILIENT_NET_REQUEST_TIMEOUT_SECS", "30")),
            retention=float(os.getenv("RESILIENT_NET_QUEUE_RETENTION_HOURS", "24")) * 3600,
            storage_key=os.getenv("RESILIENT_NET_QUEUE_KEY", STORAGE_KEY),
            retry=RetryConfig.from_env(
                "RESILIENT_NET_DISPATCH_RETRY", base=RetryConfig.dispatch(max_attempts)
            ),
        )


@dataclass
class DispatchStats:
    """Delivery counters.

    Attributes:
        total_requests: Requests enqueued
        successful_requests: Calls that completed (queued or direct)
        failed_requests: Requests that ended failed
        attempts: Queued calls executed
        retried_requests: Backoff retries scheduled
        expired_requests: Requests dropped by the retention horizon
        evicted_requests: Requests dropped by the capacity bound
        cancelled_requests: Requests removed by `cancel`/`clear`
        direct_successes: `make_resilient_call` direct calls that succeeded
    """

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    attempts: int = 0
    retried_requests: int = 0
    expired_requests: int = 0
    evicted_requests: int = 0
    cancelled_requests: int = 0
    direct_successes: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class QueueStatus:
    """Point-in-time queue summary.

    Attributes:
        total: Size of the active set
        status_counts: Count per request status
        is_processing: Whether the dispatch loop is running
        oldest_request: `created_at` of the oldest request
        stats: Copy of the delivery counters
    """

    total: int
    status_counts: dict[str, int]
    is_processing: bool
    oldest_request: float | None
    stats: DispatchStats


class DispatchOutcome(str, Enum):
    """Result of `process_one`."""

    COMPLETED = "completed"
    RETRY_SCHEDULED = "retry_scheduled"
    DEFERRED = "deferred"
    FAILED = "failed"
    DROPPED = "dropped"


def _snapshot(request: PendingRequest) -> PendingRequest:
    return request.model_copy(deep=True)


def _error_message(error: BaseException) -> str:
    message = getattr(error, "message", None) or str(error)
    return message or type(error).__name__


class ResilientDispatcher:
    """Persistent priority queue of outbound calls.

    Example:
        >>> dispatcher = ResilientDispatcher(transport, monitor, bus, FileStore(path))
        >>> await dispatcher.load()
        >>> dispatcher.start()
        >>> request_id = await dispatcher.enqueue(RequestTarget(url=url), PriorityTier.HIGH)
        >>> data = await dispatcher.make_resilient_call(RequestTarget(url=url))
    """

    def __init__(
        self,
        transport: HttpTransport,
        monitor: ConnectivityMonitor,
        bus: EventBus,
        kv_store: KeyValueStore,
        config: DispatcherConfig | None = None,
        *,
        scheduler: DelayScheduler | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            transport: Outbound HTTP transport
            monitor: Connectivity monitor consulted for reachability and quality
            bus: Shared event bus
            kv_store: Durable storage for the active set
            config: Dispatcher configuration
            scheduler: Delay scheduler for backoff re-entries
            sleep: Awaitable sleep used for the inter-call pause
        """
        self._transport = transport
        self._monitor = monitor
        self._bus = bus
        self._config = config or DispatcherConfig()
        self._snapshots = QueueSnapshotStore(kv_store, self._config.storage_key)
        self._scheduler = scheduler or DelayScheduler()
        self._sleep = sleep or asyncio.sleep
        self._retry = RetryPolicy(self._config.retry)

        self._active = ActiveSet()
        self._lock = asyncio.Lock()
        self._stats = DispatchStats()
        self._waiters: dict[str, asyncio.Future[Any]] = {}
        self._subscriptions: list[Subscription] = []

        self._processing = False
        self._loop_task: asyncio.Task[int] | None = None
        self._in_flight_id: str | None = None
        self._kicked = False
        self._connectivity_cycle = 0
        # Request id -> connectivity cycle in which it hit a transport failure
        self._deferred: dict[str, int] = {}
        self._started = False
        self._closed = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> DispatcherConfig:
        """Get dispatcher configuration."""
        return self._config

    @property
    def stats(self) -> DispatchStats:
        """Delivery counters."""
        return self._stats

    @property
    def is_processing(self) -> bool:
        """Whether the dispatch loop is running."""
        return self._processing

    @property
    def scheduler(self) -> DelayScheduler:
        """Delay scheduler holding backoff re-entries."""
        return self._scheduler

    def __len__(self) -> int:
        return len(self._active)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def load(self) -> int:
        """Restore the persisted active set and purge expired entries.

        Does not dispatch; `start()` kicks the loop once reachability is
        confirmed.

        Returns:
            Number of restored requests
        """
        try:
            restored = await self._snapshots.load()
        except StoreError:
            logger.exception("Could not read persisted queue, starting empty")
            restored = []

        async with self._lock:
            self._active.replace(restored)
        await self._purge_expired()
        logger.info("Loaded queued requests", count=len(self._active))
        return len(self._active)

    def start(self) -> None:
        """Listen for connectivity recovery and kick the loop if reachable."""
        if self._started:
            return
        self._started = True
        self._subscriptions = [
            self._bus.subscribe(EventKind.STATE_CHANGED, self._on_state_changed),
            self._bus.subscribe(EventKind.SWITCH_SUCCEEDED, self._on_switch_succeeded),
        ]
        if self._monitor.is_reachable:
            self.kick()

    async def close(self) -> None:
        """Stop the loop, drop timers and reject waiting callers.

        The active set stays persisted for the next `load()`.
        """
        if self._closed:
            return
        self._closed = True
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions = []
        self._scheduler.close()

        task = self._loop_task
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self._loop_task = None

        for request_id, future in list(self._waiters.items()):
            if not future.done():
                future.set_exception(
                    DeliveryError(
                        "Dispatcher closed before delivery",
                        request_id=request_id,
                        status="closed",
                    )
                )
        self._waiters.clear()
        logger.info("Dispatcher closed", queued=len(self._active))

    async def wait_idle(self) -> None:
        """Wait for the current dispatch loop run, if any, to finish."""
        while self._loop_task is not None and not self._loop_task.done():
            await asyncio.wait({self._loop_task})

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        target: RequestTarget,
        priority: PriorityTier | int = PriorityTier.NORMAL,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Add a call to the queue.

        Over capacity, the lowest-priority newest requests are evicted
        with a warning; this never fails the enqueue.

        Args:
            target: Call to execute
            priority: Priority tier
            metadata: Free-form metadata ("description" is used in logs)

        Returns:
            Request id
        """
        request = self._build_request(target, priority, metadata)
        await self._admit(request)
        return request.id

    def _build_request(
        self,
        target: RequestTarget,
        priority: PriorityTier | int,
        metadata: dict[str, Any] | None,
    ) -> PendingRequest:
        if self._closed:
            raise RuntimeError("Dispatcher is closed")
        return PendingRequest(
            target=target,
            priority=PriorityTier(priority),
            max_attempts=self._config.max_attempts,
            metadata={"description": "API request", **(metadata or {})},
        )

    async def _admit(self, request: PendingRequest) -> None:
        async with self._lock:
            self._active.add(request)
            evicted = self._active.enforce_capacity(self._config.capacity)
            self._stats.total_requests += 1
            self._stats.evicted_requests += len(evicted)
            await self._persist()

        if evicted:
            for dropped in evicted:
                self._scheduler.cancel(dropped.id)
                self._deferred.pop(dropped.id, None)
            logger.warning(
                "Queue capacity exceeded, evicted requests",
                capacity=self._config.capacity,
                evicted=len(evicted),
            )
            self._bus.publish(
                QueueCapacityExceeded(
                    capacity=self._config.capacity,
                    evicted=tuple(_snapshot(r) for r in evicted),
                )
            )
            error = CapacityError(
                "Request evicted by the queue capacity bound",
                capacity=self._config.capacity,
                evicted_ids=[r.id for r in evicted],
            )
            for dropped in evicted:
                self._settle(dropped.id, error=error)

        if request.id not in self._active:
            return

        logger.info(
            "Queued request",
            request_id=request.id,
            description=request.description,
            priority=request.priority.name,
        )
        self._bus.publish(RequestQueued(request=_snapshot(request)))

        if self._monitor.is_reachable:
            self._ensure_loop()

    async def cancel(self, request_id: str) -> bool:
        """Remove a request.

        A request already in flight is not interrupted; its outcome is
        discarded.

        Returns:
            True if the request was queued
        """
        async with self._lock:
            request = self._active.remove(request_id)
            if request is None:
                return False
            self._stats.cancelled_requests += 1
            await self._persist()

        self._scheduler.cancel(request_id)
        self._deferred.pop(request_id, None)
        logger.info(
            "Cancelled request",
            request_id=request_id,
            in_flight=request_id == self._in_flight_id,
        )
        self._bus.publish(RequestCancelled(request=_snapshot(request)))
        self._settle(
            request_id,
            error=DeliveryError("Request cancelled", request_id=request_id, status="cancelled"),
        )
        return True

    async def clear(self) -> int:
        """Remove every request.

        Returns:
            Number of removed requests
        """
        async with self._lock:
            removed = self._active.clear()
            self._stats.cancelled_requests += len(removed)
            await self._persist()

        self._scheduler.cancel_all()
        self._deferred.clear()
        logger.info("Cleared queue", count=len(removed))
        self._bus.publish(
            QueueCleared(count=len(removed), requests=tuple(_snapshot(r) for r in removed))
        )
        for request in removed:
            self._settle(
                request.id,
                error=DeliveryError("Queue cleared", request_id=request.id, status="cancelled"),
            )
        return len(removed)

    def get(self, request_id: str) -> PendingRequest | None:
        """Get a snapshot of a queued request."""
        request = self._active.get(request_id)
        return _snapshot(request) if request is not None else None

    def requests(self) -> list[PendingRequest]:
        """Snapshots of all queued requests in dispatch order."""
        return [_snapshot(r) for r in self._active.ordered()]

    def status(self) -> QueueStatus:
        """Summarize the queue."""
        return QueueStatus(
            total=len(self._active),
            status_counts=self._active.status_counts(),
            is_processing=self._processing,
            oldest_request=self._active.oldest_created_at(),
            stats=DispatchStats(**self._stats.to_dict()),
        )

    # ------------------------------------------------------------------
    # Dispatch loop
    # ------------------------------------------------------------------

    def kick(self) -> asyncio.Task[int] | None:
        """Start a connectivity-driven cycle and make sure the loop runs.

        Requests held back by a transport failure become eligible again.
        Connectivity recovery and successful switches call this.

        Returns:
            The running loop task, or None when closed
        """
        self._connectivity_cycle += 1
        return self._ensure_loop()

    def _ensure_loop(self) -> asyncio.Task[int] | None:
        if self._closed:
            return None
        self._kicked = True
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.get_running_loop().create_task(self.dispatch_loop())
        return self._loop_task

    async def dispatch_loop(self) -> int:
        """Drain the queue while connectivity is reachable.

        Single-flight: returns immediately if a run is active.

        Returns:
            Number of processed requests
        """
        if self._processing:
            logger.debug("Dispatch loop already running")
            return 0
        if not self._active:
            return 0

        self._processing = True
        processed = 0
        logger.info("Starting queue processing", queued=len(self._active))
        self._bus.publish(ProcessingStarted(queued=len(self._active)))

        try:
            while self._active:
                self._kicked = False
                if not self._monitor.is_reachable:
                    logger.info("No internet connectivity, pausing processing")
                    break

                await self._purge_expired()
                await self._recover_stale()

                request = self._active.next_eligible(
                    self._config.retention, exclude=self._held_back()
                )
                if request is None:
                    if self._kicked:
                        continue
                    self._arm_backoff_timers()
                    break

                cycle = self._connectivity_cycle
                outcome = await self.process_one(request)
                processed += 1

                if outcome is DispatchOutcome.DEFERRED and cycle == self._connectivity_cycle:
                    logger.info("Deferring queue until connectivity changes", request_id=request.id)
                    break

                await self._sleep(self._config.pause)
        finally:
            self._processing = False
            logger.info("Queue processing stopped", processed=processed, queued=len(self._active))
            self._bus.publish(ProcessingStopped(queued=len(self._active)))

        return processed

    async def process_one(self, request: PendingRequest) -> DispatchOutcome:
        """Execute one attempt of a queued request.

        Args:
            request: Request from the active set

        Returns:
            DispatchOutcome
        """
        async with self._lock:
            live = self._active.get(request.id)
            if live is None:
                return DispatchOutcome.DROPPED
            live.status = RequestStatus.IN_PROGRESS
            live.attempt_count += 1
            live.last_attempt_at = time.time()
            live.next_attempt_at = None
            self._in_flight_id = live.id
            self._deferred.pop(live.id, None)
            cycle = self._connectivity_cycle
            self._stats.attempts += 1
            await self._persist()

        previous_context = get_log_context()
        set_log_context(LogContext(request_id=live.id, component="dispatch"))
        try:
            logger.info(
                "Processing request",
                attempt=live.attempt_count,
                max_attempts=live.max_attempts,
                description=live.description,
            )
            self._bus.publish(RequestStarted(request=_snapshot(live)))
            try:
                data = await self._execute(live.target)
            except Exception as e:
                return await self._handle_failure(live, e, cycle)
            return await self._complete(live, data)
        finally:
            self._in_flight_id = None
            set_log_context(previous_context)

    async def _execute(self, target: RequestTarget) -> Any:
        response = await asyncio.wait_for(
            self._transport.call(
                target.url,
                target.method,
                headers=dict(target.headers),
                body=target.body,
                timeout=self._config.request_timeout,
                json=target.json_body,
            ),
            timeout=self._config.request_timeout,
        )
        return response.raise_for_status().decode()

    async def _complete(self, live: PendingRequest, data: Any) -> DispatchOutcome:
        async with self._lock:
            if live.id not in self._active:
                logger.info("Request finished after removal, result discarded")
                return DispatchOutcome.DROPPED
            live.status = RequestStatus.COMPLETED
            live.last_error = None
            self._active.remove(live.id)
            self._stats.successful_requests += 1
            await self._persist()

        logger.info("Request completed")
        self._bus.publish(RequestCompleted(request=_snapshot(live), response=data))
        self._settle(live.id, result=data)
        return DispatchOutcome.COMPLETED

    async def _handle_failure(
        self, live: PendingRequest, error: Exception, cycle: int
    ) -> DispatchOutcome:
        error_class = classify_error(error)
        message = _error_message(error)
        delay = 0.0

        async with self._lock:
            if live.id not in self._active:
                logger.info("Request failed after removal, result discarded", error=message)
                return DispatchOutcome.DROPPED
            live.last_error = message

            if live.attempts_exhausted or not is_retryable(error_class):
                live.status = RequestStatus.FAILED
                self._active.remove(live.id)
                self._stats.failed_requests += 1
                outcome = DispatchOutcome.FAILED
            elif is_connectivity_signal(error_class):
                live.status = RequestStatus.PENDING
                self._deferred[live.id] = cycle
                outcome = DispatchOutcome.DEFERRED
            else:
                delay = self._retry.calculate_delay(live.attempt_count - 1)
                live.status = RequestStatus.PENDING
                live.next_attempt_at = time.time() + delay
                self._stats.retried_requests += 1
                outcome = DispatchOutcome.RETRY_SCHEDULED
            await self._persist()

        if outcome is DispatchOutcome.FAILED:
            if error_class is ErrorClass.UNRECOVERABLE:
                logger.error("Request failed with unexpected error", exc_info=True, error=message)
            else:
                logger.error(
                    "Request permanently failed",
                    attempts=live.attempt_count,
                    error_class=error_class.value,
                    error=message,
                )
            self._bus.publish(RequestFailed(request=_snapshot(live), last_error=message))
            self._settle(live.id, error=error)
        elif outcome is DispatchOutcome.DEFERRED:
            logger.warning(
                "Request hit a transport failure, waiting for connectivity",
                attempt=live.attempt_count,
                error=message,
            )
        else:
            logger.warning(
                "Request failed, will retry",
                attempt=live.attempt_count,
                delay_s=delay,
                error=message,
            )
            self._scheduler.schedule(live.id, delay, self._on_backoff_elapsed)
            self._bus.publish(RequestRetrying(request=_snapshot(live), delay=delay))
        return outcome

    async def _purge_expired(self) -> list[PendingRequest]:
        async with self._lock:
            expired = self._active.purge_expired(
                self._config.retention, exclude=self._in_flight_id
            )
            if not expired:
                return []
            self._stats.expired_requests += len(expired)
            await self._persist()

        logger.info("Cleaned expired requests", count=len(expired))
        for request in expired:
            self._scheduler.cancel(request.id)
            self._deferred.pop(request.id, None)
            self._bus.publish(RequestExpired(request=_snapshot(request)))
            self._settle(
                request.id,
                error=DeliveryError("Request expired", request_id=request.id, status="expired"),
            )
        return expired

    async def _recover_stale(self) -> None:
        async with self._lock:
            stale = self._active.recover_stale(exclude=self._in_flight_id)
            if not stale:
                return
            await self._persist()
        logger.warning("Reset interrupted requests to pending", count=len(stale))

    async def _persist(self) -> None:
        try:
            await self._snapshots.save(self._active.ordered())
        except StoreError:
            logger.exception("Failed to persist queue, continuing in memory")

    # ------------------------------------------------------------------
    # Connectivity-driven re-entry
    # ------------------------------------------------------------------

    def _on_state_changed(self, event: StateChanged) -> None:
        restored = event.current.is_reachable and (
            event.previous is None or not event.previous.is_reachable
        )
        if restored:
            logger.info("Internet connectivity restored, starting queue processing")
            self.kick()

    def _on_switch_succeeded(self, event: SwitchSucceeded) -> None:
        logger.info("Network switch successful, resuming queue processing", network=event.candidate.name)
        self.kick()

    def _on_backoff_elapsed(self) -> None:
        if self._monitor.is_reachable:
            self._ensure_loop()

    def _held_back(self) -> set[str]:
        """Ids deferred by a transport failure in the current cycle."""
        return {
            request_id
            for request_id, cycle in self._deferred.items()
            if cycle >= self._connectivity_cycle
        }

    def _arm_backoff_timers(self) -> None:
        # Covers requests restored by load() and timers that fired early
        if self._closed:
            return
        now = time.time()
        for request in self._active.backing_off(now):
            if request.id not in self._scheduler and request.next_attempt_at is not None:
                self._scheduler.schedule(
                    request.id, request.next_attempt_at - now, self._on_backoff_elapsed
                )

    # ------------------------------------------------------------------
    # Direct call with queued fallback
    # ------------------------------------------------------------------

    async def make_resilient_call(
        self,
        target: RequestTarget,
        priority: PriorityTier | int = PriorityTier.NORMAL,
        metadata: dict[str, Any] | None = None,
    ) -> Any:
        """Call directly when quality allows, otherwise through the queue.

        The direct attempt and the queued request share a completion
        token sent in the idempotency header, and a single-shot future
        gives exactly one local outcome.

        Args:
            target: Call to execute
            priority: Priority tier for the queued fallback
            metadata: Free-form metadata for the queued fallback

        Returns:
            Decoded response body

        Raises:
            ProtocolError: If the queued call exhausted its attempts
            SerializationError: If the response body is malformed
            CapacityError: If the queued request was evicted
            DeliveryError: If the queued request expired or was removed
        """
        header = self._config.idempotency_header
        if header:
            token = target.headers.get(header) or uuid.uuid4().hex
            target = target.with_header(header, token)

        if self._monitor.is_reachable and self._monitor.quality.allows_direct_call:
            try:
                data = await self._execute(target)
            except Exception as e:
                if not is_retryable(classify_error(e)):
                    raise
                logger.info("Direct call failed, queuing request", url=target.url, error=_error_message(e))
            else:
                self._stats.successful_requests += 1
                self._stats.direct_successes += 1
                return data

        request = self._build_request(target, priority, metadata)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._waiters[request.id] = future
        try:
            await self._admit(request)
            return await future
        finally:
            self._waiters.pop(request.id, None)

    def _settle(
        self,
        request_id: str,
        *,
        result: Any = None,
        error: BaseException | None = None,
    ) -> None:
        future = self._waiters.get(request_id)
        if future is None or future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)
