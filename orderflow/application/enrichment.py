# orderflow/application/enrichment.py
import logging
from typing import Dict, Iterable

from orderflow.domain.entities import Order, Product, Customer
from orderflow.domain.interfaces import ProductRepository, CustomerRepository

logger = logging.getLogger(__name__)


class ProductInfoService:
    """Resuelve en lote los productos referenciados por un conjunto de pedidos."""

    def __init__(self, product_repository: ProductRepository):
        self.repository = product_repository

    def get_products_from_orders(self, orders: Iterable[Order]) -> Dict[str, Product]:
        # Un solo lookup por producto aunque varios pedidos lo compartan.
        product_ids = []
        for order in orders:
            for item in order.items:
                if item.product_id not in product_ids:
                    product_ids.append(item.product_id)

        products: Dict[str, Product] = {}
        for product_id in product_ids:
            product = self.repository.find_by_id(product_id)
            if product:
                products[product_id] = product
        return products

    def get_products_from_order(self, order: Order) -> Dict[str, Product]:
        return self.get_products_from_orders([order])


class CustomerInfoService:
    """
    Resuelve en lote los clientes de un conjunto de pedidos.
    Un fallo al consultar un cliente se registra y no interrumpe la respuesta.
    """

    def __init__(self, customer_repository: CustomerRepository):
        self.repository = customer_repository

    def get_customers_from_orders(self, orders: Iterable[Order]) -> Dict[str, Customer]:
        customer_ids = []
        for order in orders:
            if order.customer_id and order.customer_id not in customer_ids:
                customer_ids.append(order.customer_id)

        customers: Dict[str, Customer] = {}
        for customer_id in customer_ids:
            try:
                customer = self.repository.find_by_id(customer_id)
            except Exception as e:
                logger.warning(f"No se pudo obtener el cliente {customer_id}: {e}")
                continue
            if customer:
                customers[customer_id] = customer
        return customers

    def get_customer_from_order(self, order: Order) -> Dict[str, Customer]:
        return self.get_customers_from_orders([order])
