# orderflow/domain/interfaces.py
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Dict

from .entities import Order, Product, Customer, OrderStatus


class OrderRepository(ABC):
    """
    Contrato (Interfaz) para la capa de acceso a datos de Pedidos.
    La capa de Aplicación solo conoce esta Interfaz, no la implementación.
    """

    @abstractmethod
    def create(self, order: Order) -> Order:
        """Persiste un pedido nuevo (cabecera e ítems) y lo retorna."""
        pass

    @abstractmethod
    def update(self, order: Order) -> Order:
        """Persiste el estado actual del agregado, reemplazando sus ítems."""
        pass

    @abstractmethod
    def find_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    def find_all(self) -> List[Order]:
        pass

    @abstractmethod
    def find_by_customer_id(self, customer_id: str) -> List[Order]:
        pass

    @abstractmethod
    def find_by_status(self, status: OrderStatus) -> List[Order]:
        pass

    @abstractmethod
    def delete(self, order_id: str) -> None:
        pass


class ProductRepository(ABC):
    """Contrato para el catálogo de productos."""

    @abstractmethod
    def find_by_id(self, product_id: str) -> Optional[Product]:
        pass

    @abstractmethod
    def find_all(self) -> List[Product]:
        pass

    @abstractmethod
    def update_stock(self, product_id: str, new_stock: int) -> None:
        """Sobrescribe el stock de un producto."""
        pass

    @abstractmethod
    def reserve_stock(self, quantities: Dict[str, int]) -> Optional[str]:
        """
        Descuenta atómicamente el stock de todos los productos del lote.
        Cada descuento exige `stock >= cantidad`; si alguno falla no se aplica
        ninguno y se retorna el ID del producto que no alcanzó.
        Retorna None si el lote completo fue reservado.
        """
        pass


class CustomerRepository(ABC):
    """Contrato para la consulta de clientes."""

    @abstractmethod
    def find_by_id(self, customer_id: str) -> Optional[Customer]:
        pass


@dataclass
class PaymentCreationData:
    amount: Decimal
    description: str
    order_id: str
    customer_email: str
    payment_method_id: Optional[str] = None


@dataclass
class PaymentCreationResult:
    provider_id: str
    qr_code: Optional[str] = None
    qr_code_base64: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "payment_provider_id": self.provider_id,
            "qr_code": self.qr_code,
            "qr_code_base64": self.qr_code_base64,
        }


@dataclass
class PaymentStatusResult:
    status: str
    external_reference: Optional[str] = None


class PaymentGateway(ABC):
    """Contrato del proveedor de pagos externo."""

    @abstractmethod
    def create_payment(self, data: PaymentCreationData) -> PaymentCreationResult:
        """Crea el pago remoto. Lanza ExternalServiceError si el proveedor falla."""
        pass

    @abstractmethod
    def get_payment_status(self, payment_id: str) -> PaymentStatusResult:
        """
        Consulta el estado del pago. Nunca lanza: ante fallos retorna el
        estado 'error' sin referencia externa.
        """
        pass
