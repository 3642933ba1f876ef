# Overview: Pytest coverage for shop stock levels and the stock CLI command.

import pytest

from hirepay.services.inventory_service import (
    InventoryError,
    decrement_stock,
    get_stock_quantity,
    receive_stock,
)


class TestStockStore:
    def test_decrement_runs_in_callers_transaction(self, db_session, shop, product):
        assert decrement_stock(shop.id, product.id, 3) == 1
        db_session.rollback()
        assert get_stock_quantity(shop.id, product.id) == 10

        decrement_stock(shop.id, product.id, 3)
        db_session.commit()
        assert get_stock_quantity(shop.id, product.id) == 7

    def test_unstocked_product_is_noop(self, db_session, other_shop, product):
        assert decrement_stock(other_shop.id, product.id, 1) == 0
        assert get_stock_quantity(other_shop.id, product.id) == 0

    def test_receive_creates_row(self, db_session, other_shop, product):
        row = receive_stock(other_shop.id, product.id, 4)
        assert row.stock_quantity == 4
        receive_stock(other_shop.id, product.id, 2)
        assert get_stock_quantity(other_shop.id, product.id) == 6

    def test_rejects_non_positive_quantity(self, db_session, shop, product):
        with pytest.raises(InventoryError):
            decrement_stock(shop.id, product.id, 0)
        with pytest.raises(InventoryError):
            receive_stock(shop.id, product.id, -1)


class TestStockCommand:
    def test_shops_stock(self, app, db_session, shop, product):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["shops", "stock", "--shop-slug", shop.slug, "--sku", "TV-32", "--quantity", "5"])

        assert result.exit_code == 0, result.output
        assert "15 on hand" in result.output
        assert get_stock_quantity(shop.id, product.id) == 15

    def test_unknown_sku(self, app, db_session, shop, product):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["shops", "stock", "--shop-slug", shop.slug, "--sku", "NOPE", "--quantity", "1"])

        assert result.exit_code != 0
        assert "Product not found" in result.output
