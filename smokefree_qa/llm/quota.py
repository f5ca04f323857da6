"""Daily request quota (RPD) tracking per API key."""

import logging
import threading
from collections.abc import Callable, Sequence
from datetime import date, datetime, timedelta

from pydantic import ValidationError

from smokefree_qa.models.quota import ApiKeyUsage, Credential, RpdStats
from smokefree_qa.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_PER_DAY = 250
DEFAULT_STORAGE_KEY = "gemini_rpd_stats"


class QuotaTracker:
    """Tracks how many requests each API key has served today.

    The whole :class:`RpdStats` snapshot lives in a key-value store under a
    single key and is rewritten on every change. The daily reset is lazy:
    any read that finds a snapshot from an earlier day starts a fresh one
    with every counter at zero and every key active.

    Args:
        store: Key-value store holding the snapshot.
        credentials: Configured keys, in rotation order.
        max_per_day: Identical daily ceiling for every key.
        storage_key: Key the snapshot is stored under.
        today: Clock returning the current date.
        now: Clock returning the current local time.
    """

    def __init__(
        self,
        store: KeyValueStore,
        credentials: Sequence[Credential],
        max_per_day: int = DEFAULT_MAX_PER_DAY,
        storage_key: str = DEFAULT_STORAGE_KEY,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._credentials = list(credentials)
        self._max_per_day = max_per_day
        self._storage_key = storage_key
        self._today = today
        self._now = now
        self._lock = threading.Lock()

    @property
    def max_per_day(self) -> int:
        return self._max_per_day

    def stats(self) -> RpdStats:
        """Return today's snapshot, resetting it first if the day rolled over."""
        with self._lock:
            return self._load()

    def record_usage(self, key_id: str) -> bool:
        """Count one request against ``key_id``.

        Returns:
            True if the request was recorded. False, without changing any
            state, when the id is empty or unknown, the key is inactive, or
            its daily ceiling is already reached.
        """
        if not key_id or not isinstance(key_id, str):
            logger.warning("Invalid key id: %r", key_id)
            return False

        with self._lock:
            data = self._load()
            usage = data.find(key_id)
            if usage is None:
                logger.warning("Unknown API key %s", key_id)
                return False
            if not usage.is_active:
                logger.warning("API key %s is inactive", key_id)
                return False
            if usage.used_today >= usage.max_per_day:
                logger.warning(
                    "API key %s reached its daily limit (%d/%d)",
                    key_id,
                    usage.used_today,
                    usage.max_per_day,
                )
                return False

            usage.used_today += 1
            data.recompute()
            self._save(data)
            logger.debug("API key %s usage: %d/%d", key_id, usage.used_today, usage.max_per_day)
            return True

    def is_available(self, key_id: str) -> bool:
        """True if the key is active and still under its daily ceiling."""
        with self._lock:
            usage = self._load().find(key_id)
            return bool(usage and usage.is_active and usage.used_today < usage.max_per_day)

    def deactivate(self, key_id: str) -> bool:
        """Mark a key inactive until the next daily reset."""
        return self._set_active(key_id, active=False)

    def activate(self, key_id: str) -> bool:
        return self._set_active(key_id, active=True)

    def toggle_key_status(self, key_id: str) -> bool:
        """Flip a key between active and inactive. False if the key is unknown."""
        with self._lock:
            data = self._load()
            usage = data.find(key_id)
            if usage is None:
                return False
            usage.is_active = not usage.is_active
            self._save(data)
            return True

    def force_reset(self) -> RpdStats:
        """Discard the stored snapshot and start a fresh one."""
        with self._lock:
            logger.info("Forcing RPD reset")
            self._store.delete(self._storage_key)
            return self._reset()

    def time_until_reset(self) -> str:
        """Time left until local midnight, formatted as ``H시간 M분``."""
        now = self._now()
        midnight = datetime.combine(now.date() + timedelta(days=1), datetime.min.time())
        minutes = int((midnight - now).total_seconds() // 60)
        return f"{minutes // 60}시간 {minutes % 60}분"

    @staticmethod
    def usage_percentage(used: int, maximum: int) -> float:
        if maximum <= 0:
            return 100.0
        return min(100.0, used / maximum * 100)

    @staticmethod
    def usage_status(percentage: float) -> str:
        """Traffic-light label for a usage percentage."""
        if percentage >= 90:
            return "위험"
        if percentage >= 70:
            return "주의"
        return "정상"

    def _set_active(self, key_id: str, active: bool) -> bool:
        with self._lock:
            data = self._load()
            usage = data.find(key_id)
            if usage is None:
                return False
            if usage.is_active != active:
                usage.is_active = active
                self._save(data)
                logger.info("API key %s %s", key_id, "activated" if active else "deactivated")
            return True

    # The helpers below expect self._lock to be held.

    def _load(self) -> RpdStats:
        raw = self._store.get(self._storage_key)
        if raw is None:
            return self._reset()
        try:
            data = RpdStats.model_validate_json(raw)
        except ValidationError:
            logger.exception("Stored RPD snapshot is corrupt; resetting")
            return self._reset()

        if data.reset_time != self._today().isoformat():
            logger.info("Day changed (%s); resetting RPD counters", data.reset_time)
            return self._reset()

        if self._reconcile(data):
            self._save(data)
        return data

    def _reconcile(self, data: RpdStats) -> bool:
        """Align a stored snapshot with the configured keys. True if it changed."""
        configured = [credential.id for credential in self._credentials]
        if [key.key_id for key in data.api_keys] == configured:
            return False

        existing = {key.key_id: key for key in data.api_keys}
        today = self._today().isoformat()
        data.api_keys = [
            existing.get(credential.id) or self._fresh_usage(credential, number, today)
            for number, credential in enumerate(self._credentials, start=1)
        ]
        data.recompute()
        return True

    def _reset(self) -> RpdStats:
        today = self._today().isoformat()
        data = RpdStats(
            reset_time=today,
            api_keys=[
                self._fresh_usage(credential, number, today)
                for number, credential in enumerate(self._credentials, start=1)
            ],
        )
        self._save(data)
        return data

    def _fresh_usage(self, credential: Credential, number: int, today: str) -> ApiKeyUsage:
        return ApiKeyUsage(
            key_id=credential.id,
            key_name=f"API Key #{number}",
            masked_key=credential.masked,
            used_today=0,
            max_per_day=self._max_per_day,
            last_reset_date=today,
            is_active=True,
        )

    def _save(self, data: RpdStats) -> None:
        self._store.set(self._storage_key, data.model_dump_json())
