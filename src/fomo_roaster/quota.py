import logging
from enum import Enum

from fomo_roaster.store import Store, StoreError

logger = logging.getLogger(__name__)


class Reservation(str, Enum):
    ALLOWED = "allowed"
    DENIED = "denied"


class QuotaGovernor:
    """Caps generation calls per window using a counter in ``store``.

    The window is owned by the store: the counter expires ``window`` seconds
    after its first increment. If the store is unreachable the call is
    allowed.
    """

    def __init__(self, store: Store, ceiling: int, key: str, window: float = 86_400):
        self._store = store
        self.ceiling = ceiling
        self.key = key
        self.window = window

    async def check_and_reserve(self) -> Reservation:
        try:
            current = await self._store.get(self.key)
            if current is not None and int(current) >= self.ceiling:
                logger.warning(f"Quota {self.key} exhausted ({current}/{self.ceiling})")
                return Reservation.DENIED
            count = await self._store.incr(self.key, self.window)
        except StoreError as exc:
            logger.error(f"Quota store unavailable, allowing call: {exc}")
            return Reservation.ALLOWED

        # Another request may have taken the last slot between get and incr
        if count > self.ceiling:
            logger.warning(f"Quota {self.key} exhausted ({count}/{self.ceiling})")
            return Reservation.DENIED
        return Reservation.ALLOWED
