# orderflow/domain/entities.py
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import List, Optional, Union, Iterable

from .exceptions import (
    ValidationError,
    InvalidTransition,
    BusinessRuleViolation,
    OrderNotPending,
    OrderItemNotFound,
)
from .order_number import OrderNumberSequence, ClockOrderNumberSequence

OBSERVATION_MAX_LENGTH = 255
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Secuencia por defecto cuando quien confirma no inyecta una propia.
_default_sequence = ClockOrderNumberSequence()


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    PREPARING = "PREPARING"
    READY = "READY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    """Estados normalizados del proveedor de pagos."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    ERROR = "error"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_uuid(value) -> bool:
    """Los IDs externos (URL, webhook) llegan como texto libre."""
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def _validate_uuid(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} cannot be empty")
    try:
        uuid.UUID(str(value))
    except ValueError:
        raise ValidationError(f"{field_name} must be a valid UUID: {value}")
    return str(value)


def _to_decimal(value, field_name: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} cannot be empty")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field_name} must be a number: {value}")


class OrderItem:
    """Línea de un pedido. Pertenece a un único pedido."""

    def __init__(
        self,
        product_id: str,
        quantity: int,
        unit_price: Union[Decimal, float, int, str],
        order_id: Optional[str] = None,
        item_id: Optional[str] = None,
        observation: Optional[str] = None,
    ):
        self._id = _validate_uuid(item_id or str(uuid.uuid4()), "OrderItem ID")
        self._order_id = _validate_uuid(order_id, "Order ID") if order_id else None
        self._product_id = _validate_uuid(product_id, "Product ID")
        self._quantity = self._validate_quantity(quantity)
        self._unit_price = self._validate_unit_price(unit_price)
        self._observation = self._validate_observation(observation)

    @staticmethod
    def _validate_quantity(quantity) -> int:
        if quantity is None:
            raise ValidationError("Quantity cannot be empty")
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("Quantity must be an integer")
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")
        return quantity

    @staticmethod
    def _validate_unit_price(unit_price) -> Decimal:
        price = _to_decimal(unit_price, "Unit price")
        if price < 0:
            raise ValidationError("Unit price cannot be negative")
        return price

    @staticmethod
    def _validate_observation(observation: Optional[str]) -> Optional[str]:
        if observation and len(observation) > OBSERVATION_MAX_LENGTH:
            raise ValidationError(
                f"Observation cannot exceed {OBSERVATION_MAX_LENGTH} characters"
            )
        return observation or None

    @property
    def id(self) -> str:
        return self._id

    @property
    def order_id(self) -> Optional[str]:
        return self._order_id

    @property
    def product_id(self) -> str:
        return self._product_id

    @property
    def quantity(self) -> int:
        return self._quantity

    @quantity.setter
    def quantity(self, quantity: int) -> None:
        self._quantity = self._validate_quantity(quantity)

    @property
    def unit_price(self) -> Decimal:
        return self._unit_price

    @property
    def observation(self) -> Optional[str]:
        return self._observation

    @property
    def total_price(self) -> Decimal:
        return self._quantity * self._unit_price

    def assign_to(self, order_id: str) -> None:
        """Asocia el ítem a un pedido. Un ítem nunca cambia de pedido."""
        if self._order_id and self._order_id != order_id:
            raise ValidationError(
                f"OrderItem {self._id} already belongs to order {self._order_id}"
            )
        self._order_id = order_id

    def to_dict(self) -> dict:
        return {
            "id": self._id,
            "order_id": self._order_id,
            "product_id": self._product_id,
            "quantity": self._quantity,
            "unit_price": float(self._unit_price),
            "total_price": float(self.total_price),
            "observation": self._observation,
        }


class Order:
    """
    Agregado raíz del pedido.

    Máquina de estados:
        PENDING → CONFIRMED → PAYMENT_CONFIRMED → PREPARING → READY → DELIVERED
        cualquier estado salvo DELIVERED y CANCELLED → CANCELLED

    Los ítems solo se modifican en PENDING. El total se recalcula en cada
    mutación y `updated_at` se refresca en cada método que cambia el estado.
    """

    def __init__(
        self,
        order_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        items: Optional[List[OrderItem]] = None,
        status: Union[OrderStatus, str] = OrderStatus.PENDING,
        payment_status: str = PaymentStatus.PENDING.value,
        payment_provider_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self._id = _validate_uuid(order_id or str(uuid.uuid4()), "Order ID")
        self._customer_id = (
            _validate_uuid(customer_id, "Customer ID") if customer_id else None
        )
        if items is not None and not isinstance(items, list):
            raise ValidationError("Items must be a list")
        self._items: List[OrderItem] = list(items or [])
        for item in self._items:
            item.assign_to(self._id)
        try:
            self._status = OrderStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid order status: {status}")
        self._payment_status = payment_status
        self._payment_provider_id = payment_provider_id
        self._created_at = created_at or _now()
        self._updated_at = updated_at or self._created_at
        # Se asigna al confirmar; solo el repositorio lo restaura.
        self._order_number: Optional[int] = None
        self._total_amount = self._calculate_total_amount()

    # --- Lectura ---

    @property
    def id(self) -> str:
        return self._id

    @property
    def customer_id(self) -> Optional[str]:
        return self._customer_id

    @property
    def items(self) -> List[OrderItem]:
        return list(self._items)

    @property
    def status(self) -> OrderStatus:
        return self._status

    @property
    def payment_status(self) -> str:
        return self._payment_status

    @property
    def payment_provider_id(self) -> Optional[str]:
        return self._payment_provider_id

    @property
    def total_amount(self) -> Decimal:
        return self._total_amount

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def updated_at(self) -> datetime:
        return self._updated_at

    @property
    def order_number(self) -> Optional[int]:
        return self._order_number

    @property
    def is_pending(self) -> bool:
        return self._status == OrderStatus.PENDING

    # --- Helpers ---

    def _calculate_total_amount(self) -> Decimal:
        return sum((item.total_price for item in self._items), Decimal("0"))

    def _touch(self) -> None:
        self._updated_at = _now()

    def _require_status(self, expected: OrderStatus, message: str) -> None:
        if self._status != expected:
            raise InvalidTransition(f"{message} (current status: {self._status.value})")

    def _require_pending(self, action: str) -> None:
        if self._status != OrderStatus.PENDING:
            raise OrderNotPending(
                f"Cannot {action} an order that is not pending (order {self._id} is {self._status.value})"
            )

    # --- Transiciones ---

    def confirm(self, sequence: Optional[OrderNumberSequence] = None) -> None:
        self._require_status(
            OrderStatus.PENDING, "Order can only be confirmed when in PENDING status"
        )
        if not self._items:
            raise BusinessRuleViolation("Order must have at least one item")

        if self._order_number is None:
            now = _now()
            self._order_number = (sequence or _default_sequence).next(now.date().isoformat())
        self._status = OrderStatus.CONFIRMED
        self._touch()

    def confirm_payment(self) -> None:
        self._require_status(
            OrderStatus.CONFIRMED,
            "Payment can only be confirmed when order is in CONFIRMED status",
        )
        self._status = OrderStatus.PAYMENT_CONFIRMED
        self._touch()

    def start_preparing(self) -> None:
        self._require_status(
            OrderStatus.PAYMENT_CONFIRMED,
            "Order can only start preparing when in PAYMENT_CONFIRMED status",
        )
        self._status = OrderStatus.PREPARING
        self._touch()

    def mark_as_ready(self) -> None:
        self._require_status(
            OrderStatus.PREPARING,
            "Order can only be marked as ready when in PREPARING status",
        )
        self._status = OrderStatus.READY
        self._touch()

    def mark_as_delivered(self) -> None:
        self._require_status(
            OrderStatus.READY,
            "Order can only be marked as delivered when in READY status",
        )
        self._status = OrderStatus.DELIVERED
        self._touch()

    def cancel(self) -> None:
        if self._status == OrderStatus.DELIVERED:
            raise InvalidTransition("Cannot cancel a delivered order")
        if self._status == OrderStatus.CANCELLED:
            raise InvalidTransition("Order is already cancelled")
        self._status = OrderStatus.CANCELLED
        self._touch()

    # --- Ítems ---

    def add_item(self, items: Union[OrderItem, Iterable[OrderItem]]) -> None:
        self._require_pending("add items to")
        items_to_add = [items] if isinstance(items, OrderItem) else list(items)
        if not items_to_add:
            raise ValidationError("Cannot add empty list of items")

        for item in items_to_add:
            item.assign_to(self._id)
        self._items.extend(items_to_add)
        self._total_amount = self._calculate_total_amount()
        self._touch()

    def remove_item(self, item_ids: Union[str, Iterable[str]]) -> None:
        self._require_pending("remove items from")
        ids_to_remove = {item_ids} if isinstance(item_ids, str) else set(item_ids)
        if not ids_to_remove:
            raise ValidationError("Cannot remove empty list of items")

        remaining = [item for item in self._items if item.id not in ids_to_remove]
        if len(remaining) == len(self._items):
            raise OrderItemNotFound(
                f"No items found to remove in order {self._id}: {sorted(ids_to_remove)}"
            )
        self._items = remaining
        self._total_amount = self._calculate_total_amount()
        self._touch()

    def update_item_quantity(self, item_id: str, quantity: int) -> None:
        self._require_pending("update items in")
        item = next((i for i in self._items if i.id == item_id), None)
        if item is None:
            raise OrderItemNotFound(f"Item {item_id} not found in order {self._id}")

        item.quantity = quantity
        self._total_amount = self._calculate_total_amount()
        self._touch()

    # --- Pago ---

    def set_payment_status(self, status: str) -> None:
        self._payment_status = status
        self._touch()

    def set_payment_provider_id(self, provider_id: str) -> None:
        self._payment_provider_id = provider_id
        self._touch()

    # --- Reconstrucción desde almacenamiento ---

    def restore_order_number(self, order_number: Optional[int]) -> None:
        """
        Uso exclusivo de los repositorios al reconstruir el agregado.
        La lógica de negocio asigna el número únicamente vía confirm().
        """
        if order_number is None:
            return
        if self._order_number is not None and self._order_number != order_number:
            raise ValidationError(
                f"Order {self._id} already has order number {self._order_number}"
            )
        self._order_number = order_number

    def to_dict(self) -> dict:
        return {
            "id": self._id,
            "customer_id": self._customer_id,
            "items": [item.to_dict() for item in self._items],
            "status": self._status.value,
            "payment_status": self._payment_status,
            "total_amount": float(self._total_amount),
            "created_at": self._created_at.isoformat(),
            "updated_at": self._updated_at.isoformat(),
            "payment_provider_id": self._payment_provider_id,
            "order_number": self._order_number,
        }


@dataclass
class Product:
    """Producto del catálogo. El núcleo solo lee disponibilidad y stock."""
    product_id: str
    name: str
    price: Decimal
    is_available: bool = True
    stock: int = 0
    description: str = ""
    category_id: Optional[str] = None
    image_url: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.stock, bool) or not isinstance(self.stock, int):
            raise ValidationError("Product stock must be an integer")
        if self.stock < 0:
            raise ValidationError("Product stock cannot be negative")
        self.price = _to_decimal(self.price, "Product price")
        if self.price < 0:
            raise ValidationError("Product price cannot be negative")

    def has_stock_for(self, quantity: int) -> bool:
        return self.stock >= quantity


@dataclass
class Customer:
    """Cliente registrado. Puede no existir: los pedidos admiten invitados."""
    customer_id: str
    name: str
    email: str
    cpf: Optional[str] = None
    phone: Optional[str] = None

    def __post_init__(self):
        if not self.email or not EMAIL_PATTERN.match(self.email):
            raise ValidationError(f"Invalid email format: {self.email}")
