import uuid
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from orderflow.domain.entities import Order, OrderItem, OrderStatus
from orderflow.domain.exceptions import OrderNotFound
from orderflow.infrastructure.persistence.pg_repository import (
    PgOrderRepository,
    PgProductRepository,
    PgCustomerRepository,
    PgOrderNumberSequence,
    RepositoryError,
)

MODULE = 'orderflow.infrastructure.persistence.pg_repository'

ORDER_ID = str(uuid.uuid4())
ITEM_ID = str(uuid.uuid4())
PRODUCT_ID = str(uuid.uuid4())
CUSTOMER_ID = str(uuid.uuid4())
CREATED_AT = datetime(2025, 5, 10, 14, 0, tzinfo=timezone.utc)


# --- Fixtures y Mocks Centrales ---

@pytest.fixture
def mock_cursor():
    return MagicMock()


@pytest.fixture
def mock_db_connection(mock_cursor):
    """Retorna un objeto MagicMock que simula una conexión de base de datos."""
    mock_conn = MagicMock()
    mock_conn.cursor.return_value = mock_cursor
    return mock_conn


@pytest.fixture
def patched_pool(mock_db_connection):
    """
    Reemplaza get_connection y release_connection del módulo del repositorio
    y execute_batch, que no puede operar sobre un cursor simulado.
    """
    with patch(f'{MODULE}.get_connection', return_value=mock_db_connection) as get_conn_mock, \
            patch(f'{MODULE}.release_connection') as release_conn_mock, \
            patch(f'{MODULE}.extras.execute_batch') as execute_batch_mock:
        yield get_conn_mock, release_conn_mock, execute_batch_mock


def order_row(**overrides):
    row = {
        'order_id': ORDER_ID,
        'customer_id': CUSTOMER_ID,
        'status': 'CONFIRMED',
        'payment_status': 'pending',
        'payment_provider_id': None,
        'total_amount': Decimal('20.00'),
        'order_number': 17,
        'created_at': CREATED_AT,
        'updated_at': CREATED_AT,
    }
    row.update(overrides)
    return row


def item_row(**overrides):
    row = {
        'item_id': ITEM_ID,
        'order_id': ORDER_ID,
        'product_id': PRODUCT_ID,
        'quantity': 2,
        'unit_price': Decimal('10.00'),
        'observation': 'sin cebolla',
    }
    row.update(overrides)
    return row


def new_order():
    item = OrderItem(product_id=PRODUCT_ID, quantity=2, unit_price="10.00")
    return Order(customer_id=CUSTOMER_ID, items=[item])


class TestPgOrderRepositoryReads:

    def test_find_by_id_rebuilds_aggregate(self, patched_pool, mock_cursor, mock_db_connection):
        mock_cursor.fetchall.side_effect = [[order_row()], [item_row()]]

        order = PgOrderRepository().find_by_id(ORDER_ID)

        assert order.id == ORDER_ID
        assert order.status == OrderStatus.CONFIRMED
        assert order.order_number == 17
        assert order.total_amount == Decimal('20.00')
        assert order.items[0].observation == 'sin cebolla'
        assert order.created_at == CREATED_AT
        mock_db_connection.commit.assert_called_once()
        patched_pool[1].assert_called_once_with(mock_db_connection)

    def test_find_by_id_not_found(self, patched_pool, mock_cursor):
        mock_cursor.fetchall.return_value = []

        assert PgOrderRepository().find_by_id(ORDER_ID) is None
        # Sin cabeceras no se consultan las líneas
        assert mock_cursor.execute.call_count == 1

    def test_find_all_groups_items_by_order(self, patched_pool, mock_cursor):
        other_id = str(uuid.uuid4())
        mock_cursor.fetchall.side_effect = [
            [order_row(), order_row(order_id=other_id, customer_id=None, order_number=None, status='PENDING')],
            [item_row(), item_row(item_id=str(uuid.uuid4()), order_id=other_id, quantity=1)],
        ]

        orders = PgOrderRepository().find_all()

        assert [o.id for o in orders] == [ORDER_ID, other_id]
        assert orders[1].customer_id is None
        assert orders[1].order_number is None
        assert orders[1].total_amount == Decimal('10.00')
        items_params = mock_cursor.execute.call_args_list[1][0][1]
        assert items_params == ([ORDER_ID, other_id],)

    def test_find_by_status_filters_by_value(self, patched_pool, mock_cursor):
        mock_cursor.fetchall.return_value = []

        PgOrderRepository().find_by_status(OrderStatus.READY)

        sql, params = mock_cursor.execute.call_args[0]
        assert "WHERE status = %s" in sql
        assert params == ('READY',)

    def test_find_by_customer_id(self, patched_pool, mock_cursor):
        mock_cursor.fetchall.return_value = []
        assert PgOrderRepository().find_by_customer_id(CUSTOMER_ID) == []
        assert mock_cursor.execute.call_args[0][1] == (CUSTOMER_ID,)

    def test_database_error_is_wrapped(self, patched_pool, mock_cursor, mock_db_connection):
        mock_cursor.execute.side_effect = psycopg2.Error("boom")

        with pytest.raises(RepositoryError, match="order retrieval"):
            PgOrderRepository().find_by_id(ORDER_ID)

        mock_db_connection.rollback.assert_called_once()
        patched_pool[1].assert_called_once_with(mock_db_connection)

    def test_pool_not_initialized(self):
        with patch(f'{MODULE}.get_connection', side_effect=ConnectionError("pool")):
            with pytest.raises(ConnectionError):
                PgOrderRepository().find_all()


class TestPgOrderRepositoryWrites:

    def test_create_inserts_header_and_items(self, patched_pool, mock_cursor, mock_db_connection):
        order = new_order()

        result = PgOrderRepository().create(order)

        assert result is order
        header_params = mock_cursor.execute.call_args[0][1]
        assert header_params[0] == order.id
        assert header_params[2] == 'PENDING'
        assert header_params[5] == Decimal('20.00')
        execute_batch = patched_pool[2]
        lines = execute_batch.call_args[0][2]
        assert lines[0][0] == order.items[0].id
        assert lines[0][-1] == 0
        mock_db_connection.commit.assert_called_once()

    def test_create_empty_order_skips_items(self, patched_pool):
        PgOrderRepository().create(Order())
        patched_pool[2].assert_not_called()

    def test_update_replaces_items(self, patched_pool, mock_cursor):
        mock_cursor.rowcount = 1
        order = new_order()

        PgOrderRepository().update(order)

        statements = [c[0][0] for c in mock_cursor.execute.call_args_list]
        assert "UPDATE orderflow.orders" in statements[0]
        assert "DELETE FROM orderflow.order_items" in statements[1]
        patched_pool[2].assert_called_once()

    def test_update_missing_order_rolls_back(self, patched_pool, mock_cursor, mock_db_connection):
        mock_cursor.rowcount = 0

        with pytest.raises(OrderNotFound):
            PgOrderRepository().update(new_order())

        mock_db_connection.rollback.assert_called_once()
        mock_db_connection.commit.assert_not_called()
        patched_pool[1].assert_called_once()

    def test_delete(self, patched_pool, mock_cursor, mock_db_connection):
        mock_cursor.rowcount = 1
        PgOrderRepository().delete(ORDER_ID)
        assert mock_cursor.execute.call_args[0][1] == (ORDER_ID,)
        mock_db_connection.commit.assert_called_once()

    def test_delete_missing_order(self, patched_pool, mock_cursor):
        mock_cursor.rowcount = 0
        with pytest.raises(OrderNotFound):
            PgOrderRepository().delete(ORDER_ID)


class TestPgProductRepository:

    def product_row(self, **overrides):
        row = {
            'product_id': PRODUCT_ID, 'name': 'Burger', 'description': '', 'price': Decimal('10.00'),
            'category_id': None, 'image_url': None, 'is_available': True, 'stock': 5,
        }
        row.update(overrides)
        return row

    def test_find_by_id(self, patched_pool, mock_cursor):
        mock_cursor.fetchone.return_value = self.product_row()

        product = PgProductRepository().find_by_id(PRODUCT_ID)

        assert product.name == 'Burger'
        assert product.stock == 5

    def test_find_by_id_missing(self, patched_pool, mock_cursor):
        mock_cursor.fetchone.return_value = None
        assert PgProductRepository().find_by_id(PRODUCT_ID) is None

    def test_find_all(self, patched_pool, mock_cursor):
        mock_cursor.fetchall.return_value = [self.product_row(), self.product_row(name='Fries')]
        assert [p.name for p in PgProductRepository().find_all()] == ['Burger', 'Fries']

    def test_update_stock(self, patched_pool, mock_cursor):
        PgProductRepository().update_stock(PRODUCT_ID, 3)
        assert mock_cursor.execute.call_args[0][1] == (3, PRODUCT_ID)

    def test_reserve_stock_all_or_nothing_success(self, patched_pool, mock_cursor, mock_db_connection):
        mock_cursor.rowcount = 1
        first, second = sorted([str(uuid.uuid4()), str(uuid.uuid4())])

        assert PgProductRepository().reserve_stock({second: 1, first: 2}) is None

        params = [c[0][1] for c in mock_cursor.execute.call_args_list]
        assert params == [(2, first, 2), (1, second, 1)]
        mock_db_connection.commit.assert_called_once()
        mock_db_connection.rollback.assert_not_called()

    def test_reserve_stock_conditional_update_fails(self, patched_pool, mock_cursor, mock_db_connection):
        mock_cursor.rowcount = 0

        failed = PgProductRepository().reserve_stock({PRODUCT_ID: 9})

        assert failed == PRODUCT_ID
        sql = mock_cursor.execute.call_args[0][0]
        assert "stock >= %s" in sql
        mock_db_connection.rollback.assert_called_once()
        mock_db_connection.commit.assert_not_called()
        patched_pool[1].assert_called_once_with(mock_db_connection)

    def test_reserve_stock_database_error(self, patched_pool, mock_cursor, mock_db_connection):
        mock_cursor.execute.side_effect = psycopg2.Error("deadlock")

        with pytest.raises(RepositoryError, match="stock reservation"):
            PgProductRepository().reserve_stock({PRODUCT_ID: 1})

        mock_db_connection.rollback.assert_called_once()


class TestPgCustomerRepositoryAndSequence:

    def test_find_customer(self, patched_pool, mock_cursor):
        mock_cursor.fetchone.return_value = {
            'customer_id': CUSTOMER_ID, 'name': 'Ana', 'email': 'ana@example.com', 'cpf': None, 'phone': None,
        }
        customer = PgCustomerRepository().find_by_id(CUSTOMER_ID)
        assert customer.email == 'ana@example.com'

    def test_find_customer_missing(self, patched_pool, mock_cursor):
        mock_cursor.fetchone.return_value = None
        assert PgCustomerRepository().find_by_id(CUSTOMER_ID) is None

    def test_order_number_sequence_upserts_daily_counter(self, patched_pool, mock_cursor, mock_db_connection):
        mock_cursor.fetchone.return_value = {'last_value': 4}

        assert PgOrderNumberSequence().next('2025-05-10') == 4

        sql, params = mock_cursor.execute.call_args[0]
        assert "ON CONFLICT (date_key)" in sql
        assert params == ('2025-05-10',)
        mock_db_connection.commit.assert_called_once()
