import pytest

from lotledger.errors import ProductNotFoundError
from lotledger.extensions import db
from lotledger.models import Product
from lotledger.services import inventory_service


class TestReadModels:
    def test_list_lots_oldest_first_and_hides_exhausted(self, db_session, make_product, make_lot):
        product = make_product("P", stock_on_hand=5)
        newer = make_lot(product, 5, 1200, days_ago=1)
        older = make_lot(product, 3, 1000, days_ago=3, remaining=0)

        assert [lot["id"] for lot in inventory_service.list_lots(product.id)] == [newer.id]
        assert [lot["id"] for lot in inventory_service.list_lots(product.id, include_exhausted=True)] == [
            older.id,
            newer.id,
        ]

    def test_list_lots_unknown_product(self, db_session):
        with pytest.raises(ProductNotFoundError):
            inventory_service.list_lots(999)

    def test_stock_summary_values_remaining_lots_at_their_cost(self, db_session, make_product, make_lot):
        product = make_product("P", stock_on_hand=7, current_cost_cents=1000)
        make_lot(product, 3, 1000, days_ago=2, remaining=2)
        make_lot(product, 5, 1200, days_ago=1)

        summary = inventory_service.get_stock_summary(product.id)

        assert summary["lot_stock"] == 7
        assert summary["active_lot_count"] == 2
        assert summary["inventory_value_cents"] == 2 * 1000 + 5 * 1200
        assert summary["weighted_average_cost_cents"] == 1143
        assert summary["fifo_cost_cents"] == 1000
        assert summary["is_consistent"] is True

    def test_stock_summary_without_lots(self, db_session, make_product):
        product = make_product("Empty")

        summary = inventory_service.get_stock_summary(product.id)

        assert summary["lot_stock"] == 0
        assert summary["weighted_average_cost_cents"] is None
        assert summary["fifo_cost_cents"] == 0


class TestConsistency:
    def test_reports_drift_only(self, db_session, make_product, make_lot):
        ok = make_product("Ok", stock_on_hand=5)
        make_lot(ok, 5, 100)
        drifted = make_product("Drifted", stock_on_hand=9)
        make_lot(drifted, 4, 100)
        no_lots = make_product("Ghost", stock_on_hand=2)

        drift = inventory_service.check_stock_consistency()

        assert [(row["product_id"], row["difference"]) for row in drift] == [(drifted.id, 5), (no_lots.id, 2)]


class TestRecalculateAllCosts:
    def test_repairs_stale_costs(self, db_session, make_product, make_lot):
        stale = make_product("Stale", stock_on_hand=4, current_cost_cents=999)
        make_lot(stale, 3, 1000, days_ago=2, remaining=0)
        make_lot(stale, 5, 1200, days_ago=1, remaining=4)
        empty = make_product("Empty", current_cost_cents=50)

        costs = inventory_service.recalculate_all_costs()

        assert costs == {stale.id: 1200, empty.id: 0}
        db.session.expire_all()
        assert db.session.get(Product, stale.id).current_cost_cents == 1200
        assert db.session.get(Product, empty.id).current_cost_cents == 0
