import pytest

from ledgerapi.core.exceptions import (
    InsufficientBalanceError,
    InsufficientInventoryError,
    NotFoundError,
    ValidationError,
)
from ledgerapi.models.points import PointsRecordType
from ledgerapi.schemas.mall import ProductCreate, ProductUpdate


@pytest.fixture
def product(mall_service):
    return mall_service.create_product(
        ProductCreate(name="会员月卡", description="30天会员", points_cost=100, stock=-1, tags=["vip", " card "]),
        operator_id=1,
    )


class TestMallService:
    """MallService 테스트 - 가상 상품 교환"""

    def test_create_product_normalizes_tags(self, product):
        assert product.tags == ["vip", "card"]
        assert product.type == "virtual"
        assert product.available_count == 0

    def test_add_inventory_skips_blank_and_duplicates(self, mall_service, product):
        result = mall_service.add_inventory_items(product.id, ["A1", " A2 ", "", "A1"])
        assert result.inserted == 2
        assert result.skipped == 2

        again = mall_service.add_inventory_items(product.id, ["A2", "A3"])
        assert again.inserted == 1

        assert mall_service.get_product(product.id).available_count == 3

    def test_add_inventory_rejects_empty(self, mall_service, product):
        with pytest.raises(ValidationError):
            mall_service.add_inventory_items(product.id, ["  ", ""])

    def test_redeem_success(self, mall_service, point_service, make_user, product):
        user_id = make_user("carol", points=150)
        mall_service.add_inventory_items(product.id, ["CODE-1"])

        result = mall_service.redeem_virtual_product(product.id, user_id)

        assert result.item.code == "CODE-1"
        assert result.item.status == "used"
        assert result.item.redeemed_by == user_id
        assert result.exchange.total_points == 100
        assert result.points.balance_after == 50
        assert result.points.record.type == PointsRecordType.POINTS_MALL.value

        exchanges = mall_service.get_user_exchanges(user_id)
        assert exchanges.items[0].redeem_code == "CODE-1"
        assert exchanges.items[0].product_name == "会员月卡"

    def test_single_item_sequential_redemptions(self, mall_service, make_user, product):
        """재고 1개에 10번 교환 시도: 1번 성공, 9번 재고 부족"""
        user_id = make_user("carol", points=10_000)
        mall_service.add_inventory_items(product.id, ["ONLY"])

        successes, failures = 0, []
        for _ in range(10):
            try:
                mall_service.redeem_virtual_product(product.id, user_id)
                successes += 1
            except InsufficientInventoryError as e:
                failures.append(e.message)

        assert successes == 1
        assert failures == ["库存不足"] * 9

    def test_insufficient_points_rolls_back_item(self, mall_service, point_service, make_user, product):
        """포인트 부족 시 코드는 available 로 남고 교환 기록 없음"""
        user_id = make_user("carol", points=50)
        mall_service.add_inventory_items(product.id, ["CODE-1"])

        with pytest.raises(InsufficientBalanceError):
            mall_service.redeem_virtual_product(product.id, user_id)

        items = mall_service.get_inventory_items(product.id, status="available")
        assert [item.code for item in items.items] == ["CODE-1"]
        assert mall_service.get_user_exchanges(user_id).pagination.total == 0
        assert point_service.get_user_points(user_id).current_points == 50

    def test_redeem_inactive_product(self, mall_service, make_user, product):
        user_id = make_user("carol", points=500)
        mall_service.add_inventory_items(product.id, ["CODE-1"])
        mall_service.update_product(product.id, ProductUpdate(is_active=False))

        with pytest.raises(NotFoundError):
            mall_service.redeem_virtual_product(product.id, user_id)

    def test_redeem_decrements_finite_stock(self, mall_service, make_user):
        product = mall_service.create_product(ProductCreate(name="限量", points_cost=10, stock=2))
        mall_service.add_inventory_items(product.id, ["X1", "X2"])
        user_id = make_user("carol", points=100)

        result = mall_service.redeem_virtual_product(product.id, user_id)

        assert result.product.stock == 1

    def test_update_product_requires_fields(self, mall_service, product):
        with pytest.raises(ValidationError):
            mall_service.update_product(product.id, ProductUpdate())

    def test_list_products_filters(self, mall_service, product):
        mall_service.create_product(ProductCreate(name="积分礼包", points_cost=10, tags=["gift"]))
        sold_out = mall_service.create_product(ProductCreate(name="售罄", points_cost=10, stock=0))
        hidden = mall_service.create_product(ProductCreate(name="下架", points_cost=10, is_active=False))

        active = mall_service.list_active_products()
        active_ids = {p.id for p in active.items}
        assert product.id in active_ids
        assert sold_out.id not in active_ids
        assert hidden.id not in active_ids

        by_tag = mall_service.list_active_products(tags=["vip"])
        assert [p.id for p in by_tag.items] == [product.id]

        by_keyword = mall_service.list_active_products(keyword="礼包")
        assert [p.name for p in by_keyword.items] == ["积分礼包"]

        inactive = mall_service.list_products_for_admin(status="inactive")
        assert [p.id for p in inactive.items] == [hidden.id]

    def test_admin_exchanges(self, mall_service, make_user, product):
        user_id = make_user("carol", points=1000)
        mall_service.add_inventory_items(product.id, ["C1", "C2"])
        mall_service.redeem_virtual_product(product.id, user_id)
        mall_service.redeem_virtual_product(product.id, user_id)

        page = mall_service.get_admin_exchanges(product_id=product.id, limit=1)

        assert page.pagination.total == 2
        assert page.items[0].username == "carol"
        assert page.items[0].redeem_code == "C2"
