"""State machine supervising one bot's operational status."""

from __future__ import annotations

from threading import RLock

from packages.botbox_shared.clock import Clock
from packages.botbox_shared.concurrency import CancellationToken, Deadline, wait_until
from packages.botbox_shared.logging import fields, get_logger, log_context
from services.action.event_router.domain import EntityKind, Transition
from services.action.event_router.interfaces import TransitionPublisher
from services.lifecycle.bot_runtime.config import BotRuntimeSettings
from services.lifecycle.bot_runtime.domain import BotRuntimeSnapshot, BotStatus
from services.lifecycle.bot_runtime.interfaces import BotRuntime
from services.lifecycle.errors import (
    BotUnhealthy,
    InvalidStateTransition,
    OperationTimeout,
)

_LOGGER = get_logger(__name__)

_STARTABLE = frozenset({BotStatus.STOPPED, BotStatus.UNKNOWN})
_STOPPABLE = frozenset({BotStatus.RUNNING, BotStatus.UNKNOWN})


class BotRuntimeHandle:
    """Drive one bot through Stopped/Starting/Running/Stopping/Unknown.

    ``start`` and ``stop`` hold the handle lock for their whole duration, so
    mutations of one bot are serialized while other bots proceed in parallel.
    ``status`` and ``snapshot`` never take the lock: they read an immutable
    snapshot that is swapped in one assignment per committed transition.
    Every completed ``start``/``stop`` leaves the bot in ``Running``,
    ``Stopped`` or ``Unknown``, never in ``Starting``/``Stopping``.
    """

    def __init__(
        self,
        *,
        bot_id: str,
        runtime: BotRuntime,
        publisher: TransitionPublisher,
        settings: BotRuntimeSettings,
        clock: Clock,
    ) -> None:
        self._bot_id = bot_id
        self._runtime = runtime
        self._publisher = publisher
        self._settings = settings
        self._clock = clock
        self._lock = RLock()
        self._snapshot = BotRuntimeSnapshot(
            bot_id=bot_id, status=BotStatus.STOPPED, updated_at=clock.now()
        )

    @property
    def bot_id(self) -> str:
        return self._bot_id

    def status(self) -> BotStatus:
        """Return the current status without blocking."""
        return self._snapshot.status

    def snapshot(self) -> BotRuntimeSnapshot:
        """Return status, reason, timestamp and sequence read atomically."""
        return self._snapshot

    def start(
        self,
        *,
        cancel_token: CancellationToken | None = None,
        timeout_seconds: float | None = None,
    ) -> BotStatus:
        """Launch the bot and wait for it to report healthy.

        Allowed from ``Stopped`` and ``Unknown`` (explicit recovery). Raises
        ``BotUnhealthy`` when launch fails and ``OperationTimeout`` when the
        bot never turns healthy; both leave the bot ``Unknown``. Cancellation
        is reported by return value only: a token cancelled up front changes
        nothing, and one cancelled mid-start terminates the launch and lands
        in ``Stopped`` (``Unknown`` only when that termination fails).
        """
        token = cancel_token or CancellationToken()
        timeout = (
            self._settings.start_timeout_seconds
            if timeout_seconds is None
            else timeout_seconds
        )
        with self._lock:
            current = self._snapshot.status
            if current not in _STARTABLE:
                raise InvalidStateTransition(
                    entity_kind=EntityKind.BOT,
                    entity_id=self._bot_id,
                    current=current,
                    operation="start",
                )
            if token.cancelled:
                return current
            self._commit(BotStatus.STARTING)
            deadline = Deadline(timeout)
            try:
                self._runtime.launch(self._bot_id, cancel_token=token)
                healthy = wait_until(
                    lambda: self._runtime.is_healthy(self._bot_id),
                    token=token,
                    deadline=deadline,
                    poll_interval=self._settings.health_poll_interval_seconds,
                )
            except Exception as exc:
                reason = f"launch failed: {type(exc).__name__}: {exc}"
                self._commit(BotStatus.UNKNOWN, reason=reason)
                raise BotUnhealthy(bot_id=self._bot_id, reason=reason) from exc

            if healthy is None:
                return self._roll_back_start(_cancel_reason("start", token))
            if not healthy:
                self._commit(
                    BotStatus.UNKNOWN, reason=f"start timed out after {timeout}s"
                )
                raise OperationTimeout(
                    entity_kind=EntityKind.BOT,
                    entity_id=self._bot_id,
                    operation="start",
                    timeout_seconds=timeout,
                )
            self._commit(BotStatus.RUNNING)
            return BotStatus.RUNNING

    def stop(
        self,
        *,
        cancel_token: CancellationToken | None = None,
        timeout_seconds: float | None = None,
    ) -> BotStatus:
        """Terminate the bot and wait for the runtime to confirm.

        ``Stopped`` is a no-op. ``Unknown`` is stoppable so callers can
        reset a failed bot. A stop that does not finish within the timeout
        leaves the bot ``Unknown`` and raises ``OperationTimeout``. A
        cancelled stop settles on what the runtime reports: ``Stopped`` when
        terminated, ``Running`` when still healthy, otherwise ``Unknown``.
        """
        token = cancel_token or CancellationToken()
        timeout = (
            self._settings.stop_timeout_seconds
            if timeout_seconds is None
            else timeout_seconds
        )
        with self._lock:
            current = self._snapshot.status
            if current == BotStatus.STOPPED:
                return current
            if current not in _STOPPABLE:
                raise InvalidStateTransition(
                    entity_kind=EntityKind.BOT,
                    entity_id=self._bot_id,
                    current=current,
                    operation="stop",
                )
            if token.cancelled:
                return current
            self._commit(BotStatus.STOPPING)
            deadline = Deadline(timeout)
            try:
                self._runtime.terminate(self._bot_id, cancel_token=token)
                stopped = wait_until(
                    lambda: self._runtime.is_terminated(self._bot_id),
                    token=token,
                    deadline=deadline,
                    poll_interval=self._settings.health_poll_interval_seconds,
                )
            except Exception as exc:
                reason = f"terminate failed: {type(exc).__name__}: {exc}"
                self._commit(BotStatus.UNKNOWN, reason=reason)
                raise BotUnhealthy(bot_id=self._bot_id, reason=reason) from exc

            if stopped is None:
                return self._settle_cancelled_stop(
                    current, _cancel_reason("stop", token)
                )
            if not stopped:
                self._commit(
                    BotStatus.UNKNOWN, reason=f"stop timed out after {timeout}s"
                )
                raise OperationTimeout(
                    entity_kind=EntityKind.BOT,
                    entity_id=self._bot_id,
                    operation="stop",
                    timeout_seconds=timeout,
                )
            self._commit(BotStatus.STOPPED)
            return BotStatus.STOPPED

    def check_health(self) -> BotStatus:
        """Probe a running bot; a failed probe moves it to ``Unknown``.

        A probe never waits behind an in-flight start/stop; it reports the
        current status instead.
        """
        if not self._lock.acquire(blocking=False):
            return self._snapshot.status
        try:
            if self._snapshot.status != BotStatus.RUNNING:
                return self._snapshot.status
            try:
                healthy = self._runtime.is_healthy(self._bot_id)
                reason = "health check failed"
            except Exception as exc:  # noqa: BLE001
                healthy = False
                reason = f"health check raised {type(exc).__name__}: {exc}"
            if not healthy:
                self._commit(BotStatus.UNKNOWN, reason=reason)
            return self._snapshot.status
        finally:
            self._lock.release()

    def mark_unknown(self, reason: str) -> BotStatus:
        """Record an unrecoverable signal raised outside the handle."""
        with self._lock:
            if self._snapshot.status != BotStatus.UNKNOWN:
                self._commit(BotStatus.UNKNOWN, reason=reason)
            return self._snapshot.status

    def _roll_back_start(self, reason: str) -> BotStatus:
        try:
            stopped = self._await_termination()
        except Exception as exc:  # noqa: BLE001
            stopped = False
            reason = f"{reason}; rollback failed: {type(exc).__name__}: {exc}"
        if stopped:
            self._commit(BotStatus.STOPPED, reason=reason)
            return BotStatus.STOPPED
        self._commit(BotStatus.UNKNOWN, reason=reason)
        return BotStatus.UNKNOWN

    def _settle_cancelled_stop(self, previous: BotStatus, reason: str) -> BotStatus:
        try:
            if self._runtime.is_terminated(self._bot_id):
                settled = BotStatus.STOPPED
            elif previous == BotStatus.RUNNING and self._runtime.is_healthy(
                self._bot_id
            ):
                settled = BotStatus.RUNNING
            else:
                settled = BotStatus.UNKNOWN
        except Exception as exc:  # noqa: BLE001
            settled = BotStatus.UNKNOWN
            reason = f"{reason}; probe failed: {type(exc).__name__}: {exc}"
        self._commit(
            settled,
            reason=reason,
            cancelled=settled == previous == BotStatus.UNKNOWN,
        )
        return settled

    def _await_termination(self) -> bool:
        """Terminate a half-started bot, bounded by the stop timeout."""
        token = CancellationToken()
        self._runtime.terminate(self._bot_id, cancel_token=token)
        return bool(
            wait_until(
                lambda: self._runtime.is_terminated(self._bot_id),
                token=token,
                deadline=Deadline(self._settings.stop_timeout_seconds),
                poll_interval=self._settings.health_poll_interval_seconds,
            )
        )

    def _commit(
        self, status: BotStatus, *, reason: str = "", cancelled: bool = False
    ) -> None:
        previous = self._snapshot
        snapshot = BotRuntimeSnapshot(
            bot_id=self._bot_id,
            status=status,
            reason=reason,
            updated_at=self._clock.now(),
            sequence=previous.sequence + 1,
        )
        self._snapshot = snapshot

        with log_context(
            {
                fields.BOT_ID: self._bot_id,
                fields.FROM_STATE: str(previous.status),
                fields.TO_STATE: str(status),
                fields.SEQUENCE: snapshot.sequence,
            }
        ):
            if status == BotStatus.UNKNOWN:
                _LOGGER.error("bot entered unknown state: %s", reason)
            else:
                _LOGGER.debug("bot transition committed")

        self._publisher.publish(
            Transition(
                entity_kind=EntityKind.BOT,
                entity_id=self._bot_id,
                from_state=previous.status,
                to_state=status,
                occurred_at=snapshot.updated_at,
                sequence=snapshot.sequence,
                attributes=_transition_attributes(reason, cancelled),
            )
        )


def _transition_attributes(reason: str, cancelled: bool) -> dict[str, str | bool]:
    attributes: dict[str, str | bool] = {"reason": reason} if reason else {}
    if cancelled:
        attributes["cancelled"] = True
    return attributes


def _cancel_reason(operation: str, token: CancellationToken) -> str:
    if token.reason and token.reason != "cancelled":
        return f"{operation} cancelled: {token.reason}"
    return f"{operation} cancelled"
