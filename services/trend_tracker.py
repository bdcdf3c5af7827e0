from __future__ import annotations
from collections import deque
from decimal import Decimal
from typing import Deque, Optional

from models.price_sample import PriceSample

DEFAULT_CAPACITY = 20
SHORT_PERIOD = 5
LONG_PERIOD = 15


class TrendTracker:
    """
    Histórico acotado de precios (los más antiguos salen al superar la capacidad)
    y medias móviles simples sobre él. Solo vive en memoria.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        short_period: int = SHORT_PERIOD,
        long_period: int = LONG_PERIOD,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.short_period = short_period
        self.long_period = long_period
        self._history: Deque[PriceSample] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._history)

    def record(self, sample: PriceSample) -> None:
        self._history.append(sample)

    def moving_average(self, period: int) -> Optional[Decimal]:
        """
        Media de las últimas ``period`` muestras. Con menos historial promedia
        lo que haya (sin rellenar con ceros); sin historial devuelve None.
        """
        if period <= 0:
            raise ValueError("period must be positive")
        if not self._history:
            return None
        recent = list(self._history)[-period:]
        return sum((s.rate for s in recent), Decimal("0")) / len(recent)

    def short_average(self) -> Optional[Decimal]:
        return self.moving_average(self.short_period)

    def long_average(self) -> Optional[Decimal]:
        return self.moving_average(self.long_period)
