# orderflow/application/stock.py
import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from orderflow.domain.entities import OrderItem, Product
from orderflow.domain.exceptions import (
    ProductNotFound,
    ProductUnavailable,
    InsufficientStock,
)
from orderflow.domain.interfaces import ProductRepository

logger = logging.getLogger(__name__)


class StockCoordinator:
    """
    Valida los ítems contra el catálogo y reserva el stock al crear un pedido.

    Flujo en dos fases: primero se valida el lote completo (existencia,
    disponibilidad y stock) y solo después se descuenta. Un lote inválido
    nunca toca el stock. El descuento se delega a `reserve_stock`, que es
    atómico en el repositorio, así que dos pedidos concurrentes no pueden
    sobrevender el mismo producto aunque ambos hayan pasado la validación.
    """

    def __init__(self, product_repository: ProductRepository):
        self.repository = product_repository

    @staticmethod
    def requested_quantities(items: Iterable[OrderItem]) -> Dict[str, int]:
        """Agrupa las cantidades pedidas por producto, preservando el orden."""
        quantities: Dict[str, int] = OrderedDict()
        for item in items:
            quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity
        return quantities

    def validate_availability(
        self,
        items: List[OrderItem],
        known_products: Optional[Dict[str, Product]] = None,
    ) -> Dict[str, Product]:
        """
        Verifica que cada producto exista y esté disponible.
        Retorna los productos consultados indexados por ID (una consulta por producto).
        `known_products` evita releer los productos que el llamador ya trajo del catálogo.
        """
        known_products = known_products or {}
        products: Dict[str, Product] = {}
        for item in items:
            if item.product_id in products:
                continue
            product = known_products.get(item.product_id)
            if product is None:
                product = self.repository.find_by_id(item.product_id)
            if product is None:
                raise ProductNotFound(item.product_id)
            if not product.is_available:
                raise ProductUnavailable(product.name)
            products[item.product_id] = product
        return products

    def validate(
        self,
        items: List[OrderItem],
        known_products: Optional[Dict[str, Product]] = None,
    ) -> Dict[str, Product]:
        """Fase 1: valida el lote completo sin modificar nada."""
        products = self.validate_availability(items, known_products)
        for product_id, quantity in self.requested_quantities(items).items():
            product = products[product_id]
            if not product.has_stock_for(quantity):
                raise InsufficientStock(product.name, product.stock, quantity)
        return products

    def reserve(self, items: List[OrderItem], products: Dict[str, Product]) -> None:
        """Fase 2: descuenta el stock de todo el lote en una sola operación atómica."""
        quantities = self.requested_quantities(items)
        failed_product_id = self.repository.reserve_stock(dict(quantities))
        if failed_product_id is not None:
            product = products.get(failed_product_id)
            name = product.name if product else failed_product_id
            logger.warning(
                f"Reserva de stock rechazada para el producto {failed_product_id}: "
                f"el stock cambió entre la validación y el descuento."
            )
            raise InsufficientStock(name)
        logger.info(f"Stock reservado para {len(quantities)} producto(s): {dict(quantities)}")

    def validate_and_reserve(
        self,
        items: List[OrderItem],
        known_products: Optional[Dict[str, Product]] = None,
    ) -> Dict[str, Product]:
        products = self.validate(items, known_products)
        self.reserve(items, products)
        return products
