# orderflow/domain/order_number.py
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Optional


class OrderNumberSequence(ABC):
    """
    Contrato para generar el número corto de pedido que ve el cliente.
    El pedido no sabe cómo se genera; solo pide el siguiente número del día
    al confirmarse.
    """

    @abstractmethod
    def next(self, date_key: str) -> int:
        """Retorna el siguiente número para el día `date_key` (YYYY-MM-DD)."""
        pass


class ClockOrderNumberSequence(OrderNumberSequence):
    """
    Esquema provisional basado en reloj: día del año más minutos del día,
    módulo 999, desplazado en 1. No garantiza unicidad; en producción se usa
    el contador diario respaldado en base de datos (PgOrderNumberSequence).
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def next(self, date_key: str) -> int:
        now = self._clock()
        day_of_year = now.timetuple().tm_yday
        minutes_of_day = now.hour * 60 + now.minute
        return ((day_of_year + minutes_of_day) % 999) + 1
