# orderflow/application/use_cases.py
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple, Union

from orderflow.domain.entities import Order, OrderItem, OrderStatus, Product, Customer, is_valid_uuid
from orderflow.domain.exceptions import (
    ValidationError,
    OrderNotFound,
    CustomerNotFound,
    ProductNotFound,
    InvalidTransition,
    OrderNotPending,
)
from orderflow.domain.interfaces import OrderRepository, ProductRepository, CustomerRepository
from orderflow.domain.order_number import OrderNumberSequence, ClockOrderNumberSequence
from .stock import StockCoordinator
from .enrichment import ProductInfoService, CustomerInfoService

logger = logging.getLogger(__name__)


@dataclass
class EnrichedOrder:
    """Pedido junto con los productos y clientes que referencia."""
    order: Order
    products: Dict[str, Product] = field(default_factory=dict)
    customers: Dict[str, Customer] = field(default_factory=dict)


@dataclass
class EnrichedOrders:
    orders: List[Order]
    products: Dict[str, Product] = field(default_factory=dict)
    customers: Dict[str, Customer] = field(default_factory=dict)


@dataclass
class ItemRequest:
    """Ítem tal como llega en la petición; sin precio se usa el del catálogo."""
    product_id: str
    quantity: int
    unit_price: Optional[object] = None
    observation: Optional[str] = None


def parse_status(status: Union[OrderStatus, str]) -> OrderStatus:
    try:
        return OrderStatus(status)
    except ValueError:
        raise InvalidTransition(f"Invalid status transition to {status}")


class OrderUseCases:
    """
    Caso de uso: ciclo de vida del pedido.
    Compone el agregado con el coordinador de stock y los repositorios.
    Cada operación carga el pedido, invoca el método del agregado y persiste.
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        product_repository: ProductRepository,
        customer_repository: CustomerRepository,
        order_number_sequence: Optional[OrderNumberSequence] = None,
        stock_coordinator: Optional[StockCoordinator] = None,
    ):
        self.repository = order_repository
        self.product_repository = product_repository
        self.customer_repository = customer_repository
        self.order_number_sequence = order_number_sequence or ClockOrderNumberSequence()
        self.stock = stock_coordinator or StockCoordinator(product_repository)
        self.product_info = ProductInfoService(product_repository)
        self.customer_info = CustomerInfoService(customer_repository)

        self._transitions: Dict[OrderStatus, Callable[[Order], None]] = {
            OrderStatus.CONFIRMED: lambda order: order.confirm(self.order_number_sequence),
            OrderStatus.PAYMENT_CONFIRMED: lambda order: order.confirm_payment(),
            OrderStatus.PREPARING: lambda order: order.start_preparing(),
            OrderStatus.READY: lambda order: order.mark_as_ready(),
            OrderStatus.DELIVERED: lambda order: order.mark_as_delivered(),
            OrderStatus.CANCELLED: lambda order: order.cancel(),
        }

    # --- Creación ---

    def ensure_customer(self, customer_id: Optional[str]) -> None:
        """Sin cliente el pedido es de invitado; con cliente, este debe existir."""
        if not customer_id:
            return
        if not is_valid_uuid(customer_id) or self.customer_repository.find_by_id(customer_id) is None:
            raise CustomerNotFound(customer_id)

    def _find_product(self, product_id: str) -> Product:
        product = self.product_repository.find_by_id(product_id) if is_valid_uuid(product_id) else None
        if product is None:
            raise ProductNotFound(product_id)
        return product

    def build_items(self, requests: List[ItemRequest]) -> Tuple[List[OrderItem], Dict[str, Product]]:
        """
        Construye los ítems de una petición. Sin precio informado se toma el
        del catálogo, con una sola consulta por producto distinto.
        Retorna los ítems y los productos leídos, indexados por ID.
        """
        catalog: Dict[str, Product] = {}
        items = []
        for requested in requests:
            unit_price = requested.unit_price
            if unit_price is None:
                if requested.product_id not in catalog:
                    catalog[requested.product_id] = self._find_product(requested.product_id)
                unit_price = catalog[requested.product_id].price
            items.append(OrderItem(
                product_id=requested.product_id,
                quantity=requested.quantity,
                unit_price=unit_price,
                observation=requested.observation,
            ))
        return items, catalog

    def create_order(self, items: List[OrderItem], customer_id: Optional[str] = None) -> Order:
        """
        1. Valida el cliente (si viene).
        2. Crea el pedido vacío para tener un ID persistido.
        3. Valida todos los ítems y, solo si todos pasan, reserva el stock.
        4. Agrega los ítems al agregado y persiste de nuevo.
        """
        if not items:
            raise ValidationError("Order must be created with at least one item")
        self.ensure_customer(customer_id)
        return self._persist_new_order(items, customer_id)

    def create_order_from_requests(self, requests: List[ItemRequest], customer_id: Optional[str] = None) -> Order:
        """Igual que create_order, pero el cliente se valida antes de tocar el catálogo."""
        if not requests:
            raise ValidationError("Order must be created with at least one item")
        self.ensure_customer(customer_id)
        items, catalog = self.build_items(requests)
        return self._persist_new_order(items, customer_id, catalog)

    def _persist_new_order(
        self,
        items: List[OrderItem],
        customer_id: Optional[str],
        known_products: Optional[Dict[str, Product]] = None,
    ) -> Order:
        created_order = self.repository.create(Order(customer_id=customer_id))

        try:
            self.stock.validate_and_reserve(items, known_products)
        except Exception:
            self._discard_empty_order(created_order.id)
            raise

        created_order.add_item(items)
        return self.repository.update(created_order)

    def _discard_empty_order(self, order_id: str) -> None:
        """El pedido vacío no debe quedar huérfano si el lote no se reservó."""
        logger.info(f"Descartando pedido vacío {order_id} tras fallo de validación de stock.")
        try:
            self.repository.delete(order_id)
        except Exception as e:
            # Se conserva el error original del lote; este solo se registra.
            logger.error(f"No se pudo descartar el pedido vacío {order_id}: {e}")

    # --- Consultas ---

    def find_order_by_id(self, order_id: str) -> Order:
        order = self.repository.find_by_id(order_id) if is_valid_uuid(order_id) else None
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def find_orders_by_customer(self, customer_id: str) -> List[Order]:
        if not is_valid_uuid(customer_id):
            return []
        return self.repository.find_by_customer_id(customer_id)

    def find_all_orders(self) -> List[Order]:
        return self.repository.find_all()

    def find_orders_by_status(self, status: Union[OrderStatus, str]) -> List[Order]:
        try:
            parsed = OrderStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid order status: {status}")
        return self.repository.find_by_status(parsed)

    # --- Transiciones ---

    def _apply(self, order_id: str, action: Callable[[Order], None]) -> Order:
        order = self.find_order_by_id(order_id)
        action(order)
        return self.repository.update(order)

    def confirm_order(self, order_id: str) -> Order:
        return self._apply(order_id, self._transitions[OrderStatus.CONFIRMED])

    def confirm_order_with_customer(self, order_id: str) -> Tuple[Order, Optional[Customer]]:
        order = self.confirm_order(order_id)
        customer = None
        if order.customer_id:
            customer = self.customer_repository.find_by_id(order.customer_id)
        return order, customer

    def confirm_payment(self, order_id: str) -> Order:
        return self._apply(order_id, self._transitions[OrderStatus.PAYMENT_CONFIRMED])

    def start_preparing_order(self, order_id: str) -> Order:
        return self._apply(order_id, self._transitions[OrderStatus.PREPARING])

    def mark_order_as_ready(self, order_id: str) -> Order:
        return self._apply(order_id, self._transitions[OrderStatus.READY])

    def mark_order_as_delivered(self, order_id: str) -> Order:
        return self._apply(order_id, self._transitions[OrderStatus.DELIVERED])

    def cancel_order(self, order_id: str) -> Order:
        return self._apply(order_id, self._transitions[OrderStatus.CANCELLED])

    def update_order_status(self, order_id: str, status: Union[OrderStatus, str]) -> Order:
        """Despacha al método de transición correspondiente al estado destino."""
        order = self.find_order_by_id(order_id)
        target = parse_status(status)
        transition = self._transitions.get(target)
        if transition is None:
            raise InvalidTransition(f"Invalid status transition to {target.value}")
        transition(order)
        return self.repository.update(order)

    # --- Ítems ---

    def add_items_to_order(self, order_id: str, items: List[OrderItem]) -> Order:
        """
        Agrega ítems a un pedido pendiente. Se revalida existencia y
        disponibilidad; el stock solo se exige al crear el pedido.
        """
        order = self.find_order_by_id(order_id)
        if not order.is_pending:
            raise OrderNotPending(f"Cannot add items to an order that is not pending (order {order_id})")

        self.stock.validate_availability(items)
        order.add_item(items)
        return self.repository.update(order)

    def remove_items_from_order(self, order_id: str, item_ids: Union[str, List[str]]) -> Order:
        return self._apply(order_id, lambda order: order.remove_item(item_ids))

    def update_item_quantity(self, order_id: str, item_id: str, quantity: int) -> Order:
        return self._apply(order_id, lambda order: order.update_item_quantity(item_id, quantity))

    def delete_order(self, order_id: str) -> None:
        order = self.find_order_by_id(order_id)
        if not order.is_pending:
            raise OrderNotPending(f"Cannot delete an order that is not pending (order {order_id})")
        self.repository.delete(order_id)

    # --- Variantes enriquecidas ---

    def enrich(self, order: Order, with_customers: bool = False) -> EnrichedOrder:
        products = self.product_info.get_products_from_order(order)
        customers = self.customer_info.get_customer_from_order(order) if with_customers else {}
        return EnrichedOrder(order=order, products=products, customers=customers)

    def enrich_many(
        self, orders: List[Order], with_products: bool = True, with_customers: bool = False
    ) -> EnrichedOrders:
        products = self.product_info.get_products_from_orders(orders) if with_products else {}
        customers = self.customer_info.get_customers_from_orders(orders) if with_customers else {}
        return EnrichedOrders(orders=orders, products=products, customers=customers)

    def find_order_by_id_with_products(self, order_id: str) -> EnrichedOrder:
        return self.enrich(self.find_order_by_id(order_id))

    def find_order_by_id_with_products_and_customers(self, order_id: str) -> EnrichedOrder:
        return self.enrich(self.find_order_by_id(order_id), with_customers=True)

    def find_all_orders_with_products(self) -> EnrichedOrders:
        return self.enrich_many(self.find_all_orders())

    def find_all_orders_with_customers(self) -> EnrichedOrders:
        return self.enrich_many(self.find_all_orders(), with_products=False, with_customers=True)

    def find_all_orders_with_products_and_customers(self) -> EnrichedOrders:
        return self.enrich_many(self.find_all_orders(), with_customers=True)

    def find_orders_by_customer_with_products(self, customer_id: str) -> EnrichedOrders:
        return self.enrich_many(self.find_orders_by_customer(customer_id))

    def find_orders_by_status_with_products(self, status: Union[OrderStatus, str]) -> EnrichedOrders:
        return self.enrich_many(self.find_orders_by_status(status))

    def find_orders_by_status_with_products_and_customers(
        self, status: Union[OrderStatus, str]
    ) -> EnrichedOrders:
        return self.enrich_many(self.find_orders_by_status(status), with_customers=True)

    def update_order_status_with_products(
        self, order_id: str, status: Union[OrderStatus, str]
    ) -> EnrichedOrder:
        return self.enrich(self.update_order_status(order_id, status))

    def update_order_status_with_products_and_customers(
        self, order_id: str, status: Union[OrderStatus, str]
    ) -> EnrichedOrder:
        return self.enrich(self.update_order_status(order_id, status), with_customers=True)
