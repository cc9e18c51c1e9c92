# orderflow/application/payment_use_cases.py
import logging
from enum import Enum
from typing import Optional

from orderflow.domain.entities import Order, OrderStatus, PaymentStatus, is_valid_uuid
from orderflow.domain.exceptions import OrderNotFound, BusinessRuleViolation
from orderflow.domain.interfaces import (
    OrderRepository,
    CustomerRepository,
    PaymentGateway,
    PaymentCreationData,
    PaymentCreationResult,
)
from orderflow.domain.order_number import OrderNumberSequence, ClockOrderNumberSequence

logger = logging.getLogger(__name__)

GUEST_CUSTOMER_EMAIL = "guest@orderflow.local"

# Estados en los que el pago ya fue confirmado (directa o implícitamente).
PAYMENT_SETTLED_STATUSES = (
    OrderStatus.PAYMENT_CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.DELIVERED,
)


class ReconciliationOutcome(str, Enum):
    """
    Resultado de procesar una notificación de pago. Permite a la capa de
    transporte distinguir los no-op benignos de un procesamiento real.
    """
    PAYMENT_CONFIRMED = "payment_confirmed"
    STATUS_RECORDED = "status_recorded"
    DUPLICATE = "duplicate"
    REQUIRES_ATTENTION = "requires_attention"
    NO_REFERENCE = "no_reference"
    ORDER_NOT_FOUND = "order_not_found"

    @property
    def is_noop(self) -> bool:
        return self in (ReconciliationOutcome.NO_REFERENCE, ReconciliationOutcome.ORDER_NOT_FOUND)


class PaymentUseCases:
    """
    Caso de uso: creación de pagos y conciliación de notificaciones del
    proveedor (webhook) contra el estado del pedido.
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        payment_gateway: PaymentGateway,
        customer_repository: Optional[CustomerRepository] = None,
        order_number_sequence: Optional[OrderNumberSequence] = None,
        guest_email: str = GUEST_CUSTOMER_EMAIL,
    ):
        self.repository = order_repository
        self.gateway = payment_gateway
        self.customer_repository = customer_repository
        self.order_number_sequence = order_number_sequence or ClockOrderNumberSequence()
        self.guest_email = guest_email

    def _find_order(self, order_id) -> Optional[Order]:
        # Un ID que no es UUID no puede existir en el repositorio.
        if not is_valid_uuid(order_id):
            return None
        return self.repository.find_by_id(order_id)

    def handle_webhook_notification(self, payment_id: str) -> ReconciliationOutcome:
        """
        Concilia una notificación del proveedor:
        1. Consulta el estado real del pago (la notificación no es confiable).
        2. Sin referencia externa o sin pedido: se registra y se da por atendida.
        3. Copia estado e ID del pago al pedido, sea cual sea el estado.
        4. Solo 'approved' mueve el pedido: PENDING se confirma primero y luego
           CONFIRMED pasa a PAYMENT_CONFIRMED. Una aprobación repetida sobre un
           pedido ya pagado es un no-op.
        5. Se persiste una única vez al final.
        """
        result = self.gateway.get_payment_status(payment_id)

        if not result.external_reference:
            logger.warning(f"El pago {payment_id} no tiene referencia externa; notificación ignorada.")
            return ReconciliationOutcome.NO_REFERENCE

        order = self._find_order(result.external_reference)
        if order is None:
            logger.warning(
                f"El pago {payment_id} referencia el pedido {result.external_reference}, "
                f"que no existe; notificación ignorada."
            )
            return ReconciliationOutcome.ORDER_NOT_FOUND

        order.set_payment_status(result.status)
        order.set_payment_provider_id(payment_id)

        outcome = ReconciliationOutcome.STATUS_RECORDED
        if result.status == PaymentStatus.APPROVED.value:
            outcome = self._apply_approval(order, payment_id)

        self.repository.update(order)
        return outcome

    def _apply_approval(self, order: Order, payment_id: str) -> ReconciliationOutcome:
        if order.status in PAYMENT_SETTLED_STATUSES:
            logger.warning(
                f"Aprobación duplicada del pago {payment_id} para el pedido {order.id} "
                f"en estado {order.status.value}; sin cambios de estado."
            )
            return ReconciliationOutcome.DUPLICATE

        if order.status == OrderStatus.CANCELLED:
            logger.error(
                f"Pago {payment_id} aprobado para el pedido cancelado {order.id}; "
                f"requiere revisión manual (posible reembolso)."
            )
            return ReconciliationOutcome.REQUIRES_ATTENTION

        if order.status == OrderStatus.PENDING:
            order.confirm(self.order_number_sequence)
        if order.status == OrderStatus.CONFIRMED:
            order.confirm_payment()
        logger.info(f"Pago {payment_id} confirmado para el pedido {order.id}.")
        return ReconciliationOutcome.PAYMENT_CONFIRMED

    def get_payment_status(self, order_id: str) -> Optional[str]:
        order = self._find_order(order_id)
        return order.payment_status if order else None

    def _resolve_customer_email(self, order: Order) -> str:
        if not order.customer_id or self.customer_repository is None:
            return self.guest_email
        try:
            customer = self.customer_repository.find_by_id(order.customer_id)
        except Exception as e:
            logger.warning(f"No se pudo obtener el cliente {order.customer_id} para el pago: {e}")
            return self.guest_email
        return customer.email if customer else self.guest_email

    def create_payment(self, order_id: str, payment_method_id: Optional[str] = None) -> PaymentCreationResult:
        """Crea el pago remoto para un pedido PENDING y guarda el ID del proveedor."""
        order = self._find_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        if order.status != OrderStatus.PENDING:
            raise BusinessRuleViolation(
                f"Order {order_id} must be in PENDING status to create a payment "
                f"(current status: {order.status.value})"
            )

        result = self.gateway.create_payment(PaymentCreationData(
            amount=order.total_amount,
            description=f"Order {order.id}",
            order_id=order.id,
            customer_email=self._resolve_customer_email(order),
            payment_method_id=payment_method_id,
        ))

        order.set_payment_provider_id(result.provider_id)
        self.repository.update(order)
        return result
