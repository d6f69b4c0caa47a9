"""
Alarm dedup ledger.

Tracks the open alarm for every (subject, kind) pair so that a condition
that stays met across poll cycles raises exactly one alarm, and so that
alarms are cleared when their condition goes away.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from ..exceptions import RepositoryError
from ..interfaces import AlarmRepository, NotificationSink
from .models import Alarm, AlarmEvaluation, AlarmKey, AlarmKind, AlarmTransition

logger = logging.getLogger(__name__)


class AlarmLedger:
    """
    Open alarms keyed by (device, unit, kind).

    Each key is reconciled under its own lock, so two sweeps evaluating the
    same rule for the same subject cannot both raise an alarm.
    """

    def __init__(
        self,
        repository: AlarmRepository,
        sink: Optional[NotificationSink] = None,
    ):
        """
        Initialize the ledger.

        Args:
            repository: Alarm persistence.
            sink: Receiver of raised/cleared notifications.
        """
        self._repository = repository
        self._sink = sink

        self._open: Dict[AlarmKey, Alarm] = {}
        # Per-key locks live only while the key is open or being reconciled
        self._locks: Dict[AlarmKey, asyncio.Lock] = {}
        self._lock_users: Dict[AlarmKey, int] = {}

        # Stats
        self._raised = 0
        self._cleared = 0

    async def load(self) -> int:
        """
        Hydrate the ledger from persisted open alarms.

        If the store holds more than one open alarm for a key, the newest
        is kept and the rest are left for an operator to clean up.

        Returns:
            Number of open alarms loaded.
        """
        try:
            alarms = await self._repository.list_open()
        except RepositoryError:
            raise
        except Exception as e:
            raise RepositoryError(f"Failed to load open alarms: {e}", "list_open") from e

        self._open.clear()
        for alarm in sorted(alarms, key=lambda a: a.raised_at):
            existing = self._open.get(alarm.key)
            if existing is not None:
                logger.warning(
                    f"Duplicate open alarm {existing.id} for {alarm.kind.value} "
                    f"on device {alarm.device_id}, keeping {alarm.id}"
                )
            self._open[alarm.key] = alarm

        logger.info(f"Loaded {len(self._open)} open alarms")
        return len(self._open)

    async def reconcile(
        self,
        evaluation: AlarmEvaluation,
        now: datetime,
    ) -> AlarmTransition:
        """
        Reconcile one rule evaluation with the open alarm for its key.

        Args:
            evaluation: Result of evaluating the rule this cycle.
            now: Timestamp for raised/cleared alarms.

        Returns:
            The transition applied.

        Raises:
            RepositoryError: If the alarm change could not be persisted.
        """
        key = evaluation.key
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1

        try:
            async with lock:
                return await self._reconcile_locked(evaluation, now)
        finally:
            self._release_lock(key)

    def _release_lock(self, key: AlarmKey) -> None:
        """Drop the lock for a key nobody is waiting on and that has no open alarm."""
        users = self._lock_users[key] - 1
        if users > 0:
            self._lock_users[key] = users
            return

        del self._lock_users[key]
        if key not in self._open:
            self._locks.pop(key, None)

    async def _reconcile_locked(
        self,
        evaluation: AlarmEvaluation,
        now: datetime,
    ) -> AlarmTransition:
        key = evaluation.key
        current = self._open.get(key)

        if not evaluation.met:
            if current is None:
                return AlarmTransition.UNCHANGED
            await self._clear(current, now)
            return AlarmTransition.CLEARED

        if current is not None and current.severity == evaluation.severity:
            return AlarmTransition.UNCHANGED

        if current is not None:
            await self._clear(current, now)

        await self._raise(evaluation, now)

        if current is not None:
            return AlarmTransition.ESCALATED
        return AlarmTransition.RAISED

    async def reconcile_all(
        self,
        evaluations: Iterable[AlarmEvaluation],
        now: datetime,
    ) -> List[AlarmTransition]:
        """Reconcile several evaluations in order."""
        return [await self.reconcile(e, now) for e in evaluations]

    async def _raise(self, evaluation: AlarmEvaluation, now: datetime) -> Alarm:
        key = evaluation.key
        alarm = Alarm(
            device_id=key.device_id,
            unit_id=key.unit_id,
            kind=key.kind,
            severity=evaluation.severity,
            message=evaluation.message,
            value=evaluation.value,
            raised_at=now,
        )

        await self._save(alarm)
        self._open[key] = alarm
        self._raised += 1

        logger.warning(
            f"Alarm raised: {alarm.kind.value} ({alarm.severity.value}) "
            f"on device {alarm.device_id}"
            + (f" unit {alarm.unit_id}" if alarm.unit_id else "")
            + f": {alarm.message}"
        )

        if self._sink:
            try:
                await self._sink.on_alarm_raised(alarm)
            except Exception as e:
                logger.error(f"Error in alarm raised notification: {e}")

        return alarm

    async def _clear(self, alarm: Alarm, now: datetime) -> None:
        alarm.clear(now)
        try:
            await self._save(alarm)
        except RepositoryError:
            alarm.cleared_at = None
            raise

        self._open.pop(alarm.key, None)
        self._cleared += 1

        logger.info(
            f"Alarm cleared: {alarm.kind.value} on device {alarm.device_id}"
            + (f" unit {alarm.unit_id}" if alarm.unit_id else "")
        )

        if self._sink:
            try:
                await self._sink.on_alarm_cleared(alarm)
            except Exception as e:
                logger.error(f"Error in alarm cleared notification: {e}")

    async def _save(self, alarm: Alarm) -> None:
        try:
            await self._repository.save(alarm)
        except RepositoryError:
            raise
        except Exception as e:
            raise RepositoryError(f"Failed to save alarm {alarm.id}: {e}", "save") from e

    def get_open(self, key: AlarmKey) -> Optional[Alarm]:
        """Get the open alarm for a key."""
        return self._open.get(key)

    def open_alarms(self, device_id: Optional[UUID] = None) -> List[Alarm]:
        """
        List open alarms.

        Args:
            device_id: Only alarms for this device when given.
        """
        return [
            alarm for alarm in self._open.values()
            if device_id is None or alarm.device_id == device_id
        ]

    def has_device_alarm(
        self,
        device_id: UUID,
        exclude: Iterable[AlarmKind] = (),
    ) -> bool:
        """
        Check for an open device-level alarm.

        Args:
            device_id: Device ID.
            exclude: Alarm kinds to ignore.
        """
        excluded = set(exclude)
        return any(
            alarm.device_id == device_id
            and alarm.unit_id is None
            and alarm.kind not in excluded
            for alarm in self._open.values()
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get ledger statistics."""
        return {
            "open_alarms": len(self._open),
            "alarms_raised": self._raised,
            "alarms_cleared": self._cleared,
            "locked_keys": len(self._locks),
        }
