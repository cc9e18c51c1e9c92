"""Tests para StockCoordinator: validación del lote completo antes de reservar."""

import uuid
from unittest.mock import Mock

import pytest

from orderflow.application.stock import StockCoordinator
from orderflow.domain.entities import OrderItem, Product
from orderflow.domain.exceptions import ProductNotFound, ProductUnavailable, InsufficientStock
from orderflow.domain.interfaces import ProductRepository

BURGER_ID = str(uuid.uuid4())
FRIES_ID = str(uuid.uuid4())


def product(product_id, name, stock, available=True):
    return Product(product_id=product_id, name=name, price="10.00", stock=stock, is_available=available)


def item(product_id, quantity):
    return OrderItem(product_id=product_id, quantity=quantity, unit_price="10.00")


@pytest.fixture
def repository():
    repo = Mock(spec=ProductRepository)
    catalog = {
        BURGER_ID: product(BURGER_ID, "Burger", 5),
        FRIES_ID: product(FRIES_ID, "Fries", 1),
    }
    repo.find_by_id.side_effect = catalog.get
    repo.reserve_stock.return_value = None
    return repo


class TestStockCoordinator:

    def test_requested_quantities_aggregates_per_product(self):
        quantities = StockCoordinator.requested_quantities(
            [item(BURGER_ID, 2), item(FRIES_ID, 1), item(BURGER_ID, 3)]
        )
        assert quantities == {BURGER_ID: 5, FRIES_ID: 1}
        assert list(quantities) == [BURGER_ID, FRIES_ID]

    def test_validate_and_reserve_success(self, repository):
        coordinator = StockCoordinator(repository)

        products = coordinator.validate_and_reserve([item(BURGER_ID, 2), item(FRIES_ID, 1)])

        assert set(products) == {BURGER_ID, FRIES_ID}
        repository.reserve_stock.assert_called_once_with({BURGER_ID: 2, FRIES_ID: 1})

    def test_one_lookup_per_product(self, repository):
        StockCoordinator(repository).validate([item(BURGER_ID, 1), item(BURGER_ID, 1)])
        assert repository.find_by_id.call_count == 1

    def test_known_products_are_not_read_again(self, repository):
        known = {BURGER_ID: product(BURGER_ID, "Burger", 5)}

        StockCoordinator(repository).validate_and_reserve([item(BURGER_ID, 2), item(FRIES_ID, 1)], known)

        repository.find_by_id.assert_called_once_with(FRIES_ID)
        repository.reserve_stock.assert_called_once_with({BURGER_ID: 2, FRIES_ID: 1})

    def test_missing_product_fails_before_any_reservation(self, repository):
        coordinator = StockCoordinator(repository)
        missing = str(uuid.uuid4())

        with pytest.raises(ProductNotFound):
            coordinator.validate_and_reserve([item(BURGER_ID, 1), item(missing, 1)])

        repository.reserve_stock.assert_not_called()
        repository.update_stock.assert_not_called()

    def test_unavailable_product(self, repository):
        repository.find_by_id.side_effect = lambda pid: product(pid, "Shake", 10, available=False)
        with pytest.raises(ProductUnavailable, match="Product Shake is not available"):
            StockCoordinator(repository).validate([item(BURGER_ID, 1)])

    def test_insufficient_stock_in_second_item_touches_nothing(self, repository):
        coordinator = StockCoordinator(repository)

        with pytest.raises(InsufficientStock) as exc_info:
            coordinator.validate_and_reserve([item(BURGER_ID, 2), item(FRIES_ID, 2)])

        assert "Fries" in str(exc_info.value)
        repository.reserve_stock.assert_not_called()
        repository.update_stock.assert_not_called()

    def test_stock_is_checked_on_aggregated_quantity(self, repository):
        # 3 + 3 supera las 5 unidades aunque cada línea por separado cabría
        with pytest.raises(InsufficientStock):
            StockCoordinator(repository).validate([item(BURGER_ID, 3), item(BURGER_ID, 3)])

    def test_exact_stock_is_allowed(self, repository):
        StockCoordinator(repository).validate_and_reserve([item(BURGER_ID, 5)])
        repository.reserve_stock.assert_called_once_with({BURGER_ID: 5})

    def test_reservation_lost_to_concurrent_order(self, repository):
        repository.reserve_stock.return_value = BURGER_ID
        coordinator = StockCoordinator(repository)

        with pytest.raises(InsufficientStock, match="Burger"):
            coordinator.validate_and_reserve([item(BURGER_ID, 2)])
