# orderflow/domain/kitchen_queue.py
from typing import Iterable, List

from .entities import Order, OrderStatus

# Lo más cercano a estar listo primero.
KITCHEN_PRIORITY = {
    OrderStatus.READY: 1,
    OrderStatus.PREPARING: 2,
    OrderStatus.PAYMENT_CONFIRMED: 3,
}
DEFAULT_PRIORITY = 4


def kitchen_priority(order: Order) -> int:
    return KITCHEN_PRIORITY.get(order.status, DEFAULT_PRIORITY)


def rank_kitchen_queue(orders: Iterable[Order]) -> List[Order]:
    """
    Deriva la cola de cocina: solo pedidos READY, PREPARING y
    PAYMENT_CONFIRMED, ordenados por prioridad del estado y, dentro del mismo
    estado, por fecha de creación ascendente. No depende del orden de entrada.
    """
    in_kitchen = [order for order in orders if order.status in KITCHEN_PRIORITY]
    return sorted(in_kitchen, key=lambda order: (kitchen_priority(order), order.created_at))
