# orderflow/application/kitchen_use_cases.py
from typing import Union, List

from orderflow.domain.entities import Order, OrderStatus
from orderflow.domain.exceptions import InvalidTransition
from orderflow.domain.kitchen_queue import rank_kitchen_queue
from .use_cases import OrderUseCases, EnrichedOrder, EnrichedOrders, parse_status

# Estado destino -> estado de origen que la cocina puede mover.
KITCHEN_TRANSITIONS = {
    OrderStatus.PREPARING: OrderStatus.PAYMENT_CONFIRMED,
    OrderStatus.READY: OrderStatus.PREPARING,
}


class KitchenUseCases:
    """
    Caso de uso: vista y operaciones de la cocina.
    La cocina solo puede iniciar la preparación y marcar pedidos como listos.
    """

    def __init__(self, order_use_cases: OrderUseCases):
        self.orders = order_use_cases

    def update_order_status(self, order_id: str, status: Union[OrderStatus, str]) -> Order:
        target = parse_status(status)
        if target not in KITCHEN_TRANSITIONS:
            raise InvalidTransition(f"Invalid status transition for kitchen: {target.value}")

        order = self.orders.find_order_by_id(order_id)
        required = KITCHEN_TRANSITIONS[target]
        if order.status != required:
            raise InvalidTransition(
                f"Order can only be moved to {target.value} from {required.value} "
                f"(current status: {order.status.value})"
            )
        if target == OrderStatus.PREPARING:
            return self.orders.start_preparing_order(order_id)
        return self.orders.mark_order_as_ready(order_id)

    def update_order_status_with_products(self, order_id: str, status) -> EnrichedOrder:
        return self.orders.enrich(self.update_order_status(order_id, status))

    def update_order_status_with_products_and_customers(self, order_id: str, status) -> EnrichedOrder:
        return self.orders.enrich(self.update_order_status(order_id, status), with_customers=True)

    def get_payment_confirmed_orders(self) -> EnrichedOrders:
        return self.orders.find_orders_by_status_with_products(OrderStatus.PAYMENT_CONFIRMED)

    def get_payment_confirmed_orders_with_customers(self) -> EnrichedOrders:
        return self.orders.find_orders_by_status_with_products_and_customers(
            OrderStatus.PAYMENT_CONFIRMED
        )

    def get_kitchen_queue(self) -> List[Order]:
        """Pedidos activos en cocina, priorizados (ver rank_kitchen_queue)."""
        return rank_kitchen_queue(self.orders.find_all_orders())

    def get_kitchen_queue_with_products_and_customers(self) -> EnrichedOrders:
        return self.orders.enrich_many(self.get_kitchen_queue(), with_customers=True)
