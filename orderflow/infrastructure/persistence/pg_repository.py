# orderflow/infrastructure/persistence/pg_repository.py
import logging
from typing import Any, Callable, Dict, List, Optional

import psycopg2
from psycopg2 import extras
from psycopg2.extras import RealDictCursor

from orderflow.domain.entities import Order, OrderItem, OrderStatus, Product, Customer
from orderflow.domain.exceptions import OrderNotFound
from orderflow.domain.interfaces import OrderRepository, ProductRepository, CustomerRepository
from orderflow.domain.order_number import OrderNumberSequence
from .db_connector import get_connection, release_connection

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Fallo de infraestructura al acceder a PostgreSQL."""


class _PgRepository:
    """Manejo común de conexión, commit/rollback y liberación al pool."""

    def _run(self, work: Callable[[Any], Any], error_message: str) -> Any:
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            result = work(cursor)
            conn.commit()
            return result
        except psycopg2.Error as e:
            logger.error(f"Error de base de datos ({error_message}): {e}")
            if conn:
                conn.rollback()
            raise RepositoryError(error_message)
        except Exception:
            # Errores de dominio (p.ej. OrderNotFound) deshacen la transacción y se propagan.
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                release_connection(conn)


ORDER_COLUMNS = """
    order_id, customer_id, status, payment_status, payment_provider_id,
    total_amount, order_number, created_at, updated_at
"""

ITEM_COLUMNS = "item_id, order_id, product_id, quantity, unit_price, observation"


class PgOrderRepository(_PgRepository, OrderRepository):
    """
    Implementación concreta que se conecta a PostgreSQL
    para obtener y persistir el agregado Pedido usando psycopg2.
    """

    @staticmethod
    def _row_to_item(row: Dict[str, Any]) -> OrderItem:
        return OrderItem(
            product_id=str(row['product_id']),
            quantity=row['quantity'],
            unit_price=row['unit_price'],
            order_id=str(row['order_id']),
            item_id=str(row['item_id']),
            observation=row['observation'],
        )

    @staticmethod
    def _row_to_order(row: Dict[str, Any], items: List[OrderItem]) -> Order:
        order = Order(
            order_id=str(row['order_id']),
            customer_id=str(row['customer_id']) if row['customer_id'] else None,
            items=items,
            status=row['status'],
            payment_status=row['payment_status'],
            payment_provider_id=row['payment_provider_id'],
            created_at=row['created_at'],
            updated_at=row['updated_at'],
        )
        order.restore_order_number(row['order_number'])
        return order

    def _load_orders(self, cursor, where: str = "", params: tuple = ()) -> List[Order]:
        cursor.execute(
            f"SELECT {ORDER_COLUMNS} FROM orderflow.orders {where} ORDER BY created_at;",
            params,
        )
        order_rows = cursor.fetchall()
        if not order_rows:
            return []

        order_ids = [str(row['order_id']) for row in order_rows]
        cursor.execute(
            f"""
            SELECT {ITEM_COLUMNS} FROM orderflow.order_items
            WHERE order_id = ANY(%s::uuid[])
            ORDER BY order_id, position;
            """,
            (order_ids,),
        )
        items_by_order: Dict[str, List[OrderItem]] = {order_id: [] for order_id in order_ids}
        for row in cursor.fetchall():
            items_by_order[str(row['order_id'])].append(self._row_to_item(row))

        return [
            self._row_to_order(row, items_by_order[str(row['order_id'])])
            for row in order_rows
        ]

    @staticmethod
    def _insert_items(cursor, order: Order) -> None:
        lines_insert_sql = """
            INSERT INTO orderflow.order_items
                (item_id, order_id, product_id, quantity, unit_price, total_price, observation, position)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s);
        """
        lines_data = [
            (item.id, order.id, item.product_id, item.quantity, item.unit_price,
             item.total_price, item.observation, position)
            for position, item in enumerate(order.items)
        ]
        if lines_data:
            extras.execute_batch(cursor, lines_insert_sql, lines_data)

    def create(self, order: Order) -> Order:
        """Inserta la cabecera y las líneas del pedido en una transacción."""
        def work(cursor):
            cursor.execute(
                """
                INSERT INTO orderflow.orders
                    (order_id, customer_id, status, payment_status, payment_provider_id,
                     total_amount, order_number, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s);
                """,
                (order.id, order.customer_id, order.status.value, order.payment_status,
                 order.payment_provider_id, order.total_amount, order.order_number,
                 order.created_at, order.updated_at),
            )
            self._insert_items(cursor, order)
            return order

        return self._run(work, "Database error during order insertion.")

    def update(self, order: Order) -> Order:
        """Actualiza la cabecera y reemplaza todas las líneas del pedido."""
        def work(cursor):
            cursor.execute(
                """
                UPDATE orderflow.orders
                SET customer_id = %s, status = %s, payment_status = %s,
                    payment_provider_id = %s, total_amount = %s, order_number = %s,
                    updated_at = %s
                WHERE order_id = %s;
                """,
                (order.customer_id, order.status.value, order.payment_status,
                 order.payment_provider_id, order.total_amount, order.order_number,
                 order.updated_at, order.id),
            )
            if cursor.rowcount == 0:
                raise OrderNotFound(order.id)
            cursor.execute("DELETE FROM orderflow.order_items WHERE order_id = %s;", (order.id,))
            self._insert_items(cursor, order)
            return order

        return self._run(work, "Database error during order update.")

    def find_by_id(self, order_id: str) -> Optional[Order]:
        orders = self._run(
            lambda cursor: self._load_orders(cursor, "WHERE order_id = %s", (order_id,)),
            "Database error during order retrieval.",
        )
        return orders[0] if orders else None

    def find_all(self) -> List[Order]:
        return self._run(
            lambda cursor: self._load_orders(cursor),
            "Database error during all orders retrieval.",
        )

    def find_by_customer_id(self, customer_id: str) -> List[Order]:
        return self._run(
            lambda cursor: self._load_orders(cursor, "WHERE customer_id = %s", (customer_id,)),
            "Database error during order retrieval by customer.",
        )

    def find_by_status(self, status: OrderStatus) -> List[Order]:
        return self._run(
            lambda cursor: self._load_orders(cursor, "WHERE status = %s", (OrderStatus(status).value,)),
            "Database error during order retrieval by status.",
        )

    def delete(self, order_id: str) -> None:
        def work(cursor):
            # Las líneas se eliminan en cascada.
            cursor.execute("DELETE FROM orderflow.orders WHERE order_id = %s;", (order_id,))
            if cursor.rowcount == 0:
                raise OrderNotFound(order_id)

        self._run(work, "Database error during order deletion.")


class PgProductRepository(_PgRepository, ProductRepository):
    """Acceso al catálogo de productos y a su stock."""

    @staticmethod
    def _row_to_product(row: Dict[str, Any]) -> Product:
        return Product(
            product_id=str(row['product_id']),
            name=row['name'],
            price=row['price'],
            is_available=row['is_available'],
            stock=row['stock'],
            description=row['description'],
            category_id=str(row['category_id']) if row['category_id'] else None,
            image_url=row['image_url'],
        )

    def find_by_id(self, product_id: str) -> Optional[Product]:
        def work(cursor):
            cursor.execute(
                """
                SELECT product_id, name, description, price, category_id, image_url, is_available, stock
                FROM orderflow.products WHERE product_id = %s;
                """,
                (product_id,),
            )
            row = cursor.fetchone()
            return self._row_to_product(row) if row else None

        return self._run(work, "Database error during product retrieval.")

    def find_all(self) -> List[Product]:
        def work(cursor):
            cursor.execute(
                """
                SELECT product_id, name, description, price, category_id, image_url, is_available, stock
                FROM orderflow.products ORDER BY name;
                """
            )
            return [self._row_to_product(row) for row in cursor.fetchall()]

        return self._run(work, "Database error during products retrieval.")

    def update_stock(self, product_id: str, new_stock: int) -> None:
        self._run(
            lambda cursor: cursor.execute(
                "UPDATE orderflow.products SET stock = %s WHERE product_id = %s;",
                (new_stock, product_id),
            ),
            "Database error during stock update.",
        )

    def reserve_stock(self, quantities: Dict[str, int]) -> Optional[str]:
        """
        Descuento condicional por producto dentro de una sola transacción.
        Los productos se bloquean en orden de ID para evitar interbloqueos
        entre pedidos concurrentes.
        """
        conn = None
        try:
            conn = get_connection()
            cursor = conn.cursor()
            for product_id in sorted(quantities):
                quantity = quantities[product_id]
                cursor.execute(
                    """
                    UPDATE orderflow.products
                    SET stock = stock - %s
                    WHERE product_id = %s AND stock >= %s;
                    """,
                    (quantity, product_id, quantity),
                )
                if cursor.rowcount == 0:
                    conn.rollback()
                    return product_id
            conn.commit()
            return None
        except psycopg2.Error as e:
            logger.error(f"Error de base de datos al reservar stock: {e}")
            if conn:
                conn.rollback()
            raise RepositoryError("Database error during stock reservation.")
        finally:
            if conn:
                release_connection(conn)


class PgCustomerRepository(_PgRepository, CustomerRepository):
    """Consulta de clientes."""

    def find_by_id(self, customer_id: str) -> Optional[Customer]:
        def work(cursor):
            cursor.execute(
                "SELECT customer_id, name, email, cpf, phone FROM orderflow.customers WHERE customer_id = %s;",
                (customer_id,),
            )
            row = cursor.fetchone()
            if not row:
                return None
            return Customer(
                customer_id=str(row['customer_id']),
                name=row['name'],
                email=row['email'],
                cpf=row['cpf'],
                phone=row['phone'],
            )

        return self._run(work, "Database error during customer retrieval.")


class PgOrderNumberSequence(_PgRepository, OrderNumberSequence):
    """Contador diario durable de números de pedido (1, 2, 3... por día)."""

    def next(self, date_key: str) -> int:
        def work(cursor):
            cursor.execute(
                """
                INSERT INTO orderflow.order_number_counters (date_key, last_value)
                VALUES (%s, 1)
                ON CONFLICT (date_key)
                DO UPDATE SET last_value = orderflow.order_number_counters.last_value + 1
                RETURNING last_value;
                """,
                (date_key,),
            )
            return cursor.fetchone()['last_value']

        return self._run(work, "Database error during order number generation.")
