# orderflow/domain/exceptions.py
"""
Taxonomía de errores del dominio de pedidos.

La capa Web traduce estas excepciones a códigos HTTP; la capa de Aplicación
nunca las silencia salvo en los caminos de no-op documentados del conciliador
de pagos.
"""


class DomainError(Exception):
    """Error base de las reglas de negocio."""


class ValidationError(DomainError):
    """Datos de construcción de una entidad inválidos."""


class NotFoundError(DomainError):
    """Una búsqueda obligatoria no encontró la entidad."""


class OrderNotFound(NotFoundError):
    def __init__(self, order_id: str):
        super().__init__(f"Order with ID {order_id} not found")
        self.order_id = order_id


class ProductNotFound(NotFoundError):
    def __init__(self, product_id: str):
        super().__init__(f"Product with ID {product_id} not found")
        self.product_id = product_id


class CustomerNotFound(NotFoundError):
    def __init__(self, customer_id: str):
        super().__init__(f"Customer with ID {customer_id} not found")
        self.customer_id = customer_id


class InvalidTransition(DomainError):
    """Cambio de estado no permitido por la máquina de estados del pedido."""


class BusinessRuleViolation(DomainError):
    """Regla de negocio violada (stock, disponibilidad, pedido no pendiente...)."""


class ProductUnavailable(BusinessRuleViolation):
    def __init__(self, product_name: str):
        super().__init__(f"Product {product_name} is not available")
        self.product_name = product_name


class InsufficientStock(BusinessRuleViolation):
    def __init__(self, product_name: str, available: int = None, requested: int = None):
        message = f"Insufficient stock for product {product_name}"
        if available is not None and requested is not None:
            message += f" (available: {available}, requested: {requested})"
        super().__init__(message)
        self.product_name = product_name


class OrderNotPending(BusinessRuleViolation):
    """Mutación de ítems o borrado sobre un pedido que ya salió de PENDING."""


class ExternalServiceError(DomainError):
    """Fallo del proveedor de pagos."""


class OrderItemNotFound(NotFoundError):
    """El ítem indicado no pertenece al pedido."""
