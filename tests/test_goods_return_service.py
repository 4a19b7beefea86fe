"""Tests for goods return creation: stock deduction, snapshot and valuation."""

import logging
import uuid

import pytest
from sqlalchemy import select, func, update
from sqlalchemy.exc import SQLAlchemyError

from app.models.goods_return import GoodsReturn
from app.models.inventory import InventoryItem, StockMovement
from app.schemas.goods_return import GoodsReturnCreate
from app.services.document_sequence_service import (
    DocumentSequenceService,
    DocumentSequenceError,
    business_today,
)
from app.services.goods_return_service import (
    GoodsReturnService,
    ValidationError,
    NotFoundError,
    ForbiddenError,
    ReturnNumberGenerationError,
)


def return_data(**overrides) -> GoodsReturnCreate:
    payload = {
        "original_challan_number": "DC-2026-0042",
        "damaged_quantity": 10,
        "returned_quantity": 5,
        "return_reason": "damaged",
    }
    payload.update(overrides)
    return GoodsReturnCreate(**payload)


async def count_rows(db_session, model) -> int:
    return await db_session.scalar(select(func.count()).select_from(model))


class TestCreateGoodsReturn:
    async def test_deducts_stock_and_values_return(self, db_session, company, item, user_id):
        service = GoodsReturnService(db_session, company.id)

        goods_return = await service.create_goods_return(item.id, return_data(), user_id)

        assert goods_return.return_number == f"GR-AQUA-{business_today():%Y%m%d}-0001"
        assert goods_return.total_quantity == 15
        assert goods_return.unit_cost == 50
        assert goods_return.damaged_value == 500
        assert goods_return.returned_value == 250
        assert goods_return.total_value == 750
        assert goods_return.return_status == "approved"
        assert goods_return.status == "active"
        assert goods_return.approval_status == "approved"
        assert goods_return.created_by == user_id
        assert goods_return.unit == "pcs"

        await db_session.refresh(item)
        assert item.current_stock == 85
        assert item.available_stock == 85
        assert item.damaged_stock == 10
        assert item.total_value == 85 * 50
        assert item.returns_damaged_active == 10
        assert item.returns_returned_active == 5
        assert item.stock_version == 1
        assert item.last_stock_update is not None

    async def test_stock_impact_snapshot(self, db_session, company, item, user_id):
        service = GoodsReturnService(db_session, company.id)

        goods_return = await service.create_goods_return(item.id, return_data(), user_id)

        assert goods_return.stock_impact == {
            "inventory_stock_before": 100,
            "inventory_stock_after": 85,
            "damaged_stock_before": 0,
            "damaged_stock_after": 10,
            "returned_stock_before": 0,
            "returned_stock_after": 5,
        }

    async def test_snapshot_accumulates_across_active_returns(self, db_session, company, item, user_id):
        service = GoodsReturnService(db_session, company.id)
        await service.create_goods_return(item.id, return_data(), user_id)

        second = await service.create_goods_return(
            item.id, return_data(damaged_quantity=3, returned_quantity=2), user_id
        )

        assert second.return_number.endswith("-0002")
        assert second.inventory_stock_before == 85
        assert second.inventory_stock_after == 80
        assert second.damaged_stock_before == 10
        assert second.damaged_stock_after == 13
        assert second.returned_stock_before == 5
        assert second.returned_stock_after == 7

    async def test_insufficient_stock_leaves_everything_untouched(self, db_session, company, item, user_id):
        service = GoodsReturnService(db_session, company.id)
        await service.create_goods_return(item.id, return_data(), user_id)

        with pytest.raises(ValidationError, match="Insufficient stock. Available: 85, Requested: 200"):
            await service.create_goods_return(
                item.id, return_data(damaged_quantity=0, returned_quantity=200), user_id
            )

        await db_session.refresh(item)
        assert item.current_stock == 85
        assert await count_rows(db_session, GoodsReturn) == 1

    async def test_concurrent_stock_change_is_caught_by_conditional_update(
        self, db_session, session_factory, company, item, user_id
    ):
        service = GoodsReturnService(db_session, company.id)

        # Another request drains the stock after this session loaded the item
        async with session_factory() as other:
            await other.execute(
                update(InventoryItem).where(InventoryItem.id == item.id).values(current_stock=5)
            )
            await other.commit()

        with pytest.raises(ValidationError, match="Insufficient stock. Available: 5, Requested: 15"):
            await service.create_goods_return(item.id, return_data(), user_id)

        await db_session.refresh(item)
        assert item.current_stock == 5
        assert await count_rows(db_session, GoodsReturn) == 0

        # The rolled back number is handed out again
        ok = await service.create_goods_return(
            item.id, return_data(damaged_quantity=1, returned_quantity=0), user_id
        )
        assert ok.return_number.endswith("-0001")

    async def test_negative_quantity(self, db_session, company, item, user_id):
        service = GoodsReturnService(db_session, company.id)

        with pytest.raises(ValidationError, match="Quantities cannot be negative"):
            await service.create_goods_return(item.id, return_data(damaged_quantity=-1), user_id)

    async def test_zero_total_quantity(self, db_session, company, item, user_id):
        service = GoodsReturnService(db_session, company.id)

        with pytest.raises(ValidationError, match="Total quantity must be greater than 0"):
            await service.create_goods_return(
                item.id, return_data(damaged_quantity=0, returned_quantity=0), user_id
            )

        assert await count_rows(db_session, GoodsReturn) == 0
        assert await count_rows(db_session, StockMovement) == 0

    async def test_blank_challan_number(self, db_session, company, item, user_id):
        service = GoodsReturnService(db_session, company.id)

        with pytest.raises(ValidationError, match="Original challan number is required"):
            await service.create_goods_return(
                item.id, return_data(original_challan_number="   "), user_id
            )

        await db_session.refresh(item)
        assert item.current_stock == 100
        assert await count_rows(db_session, GoodsReturn) == 0

    async def test_challan_number_is_trimmed(self, db_session, company, item, user_id):
        service = GoodsReturnService(db_session, company.id)

        goods_return = await service.create_goods_return(
            item.id, return_data(original_challan_number="  DC-2026-0042 "), user_id
        )

        assert goods_return.original_challan_number == "DC-2026-0042"

    async def test_item_ownership_checked_before_quantities(
        self, db_session, company, other_company, make_item, user_id
    ):
        foreign_item = await make_item(other_company, item_code="HVL-002")
        service = GoodsReturnService(db_session, company.id)

        with pytest.raises(ForbiddenError):
            await service.create_goods_return(
                foreign_item.id, return_data(damaged_quantity=0, returned_quantity=0), user_id
            )

    async def test_sequential_numbers_are_distinct(self, db_session, company, item, user_id):
        service = GoodsReturnService(db_session, company.id)

        numbers = [
            (await service.create_goods_return(
                item.id, return_data(damaged_quantity=1, returned_quantity=1), user_id
            )).return_number
            for _ in range(5)
        ]

        prefix = f"GR-AQUA-{business_today():%Y%m%d}"
        assert numbers == [f"{prefix}-{n:04d}" for n in range(1, 6)]

    async def test_unknown_item(self, db_session, company, user_id):
        service = GoodsReturnService(db_session, company.id)

        with pytest.raises(NotFoundError) as exc_info:
            await service.create_goods_return(uuid.uuid4(), return_data(), user_id)
        assert exc_info.value.status_code == 404

    async def test_item_of_another_company(self, db_session, company, other_company, make_item, user_id):
        foreign_item = await make_item(other_company, item_code="HVL-001")
        service = GoodsReturnService(db_session, company.id)

        with pytest.raises(ForbiddenError) as exc_info:
            await service.create_goods_return(foreign_item.id, return_data(), user_id)
        assert exc_info.value.status_code == 403

        await db_session.refresh(foreign_item)
        assert foreign_item.current_stock == 100

    async def test_available_stock_never_negative(self, db_session, company, make_item, user_id):
        reserved_item = await make_item(company, item_code="ITM-RES", current_stock=10, reserved_stock=8)
        service = GoodsReturnService(db_session, company.id)

        await service.create_goods_return(
            reserved_item.id, return_data(damaged_quantity=0, returned_quantity=5), user_id
        )

        await db_session.refresh(reserved_item)
        assert reserved_item.current_stock == 5
        assert reserved_item.available_stock == 0

    async def test_pending_when_approval_required(self, db_session, company, item, user_id):
        service = GoodsReturnService(db_session, company.id)

        goods_return = await service.create_goods_return(
            item.id, return_data(approval_required=True), user_id
        )

        assert goods_return.return_status == "pending"
        assert goods_return.approval_status == "pending"
        assert goods_return.status == "active"

    async def test_item_details_are_copied(self, db_session, company, make_item, user_id):
        batch_item = await make_item(
            company, item_code="ITM-BATCH", unit="box", batch_number="B-77", lot_number="L-1"
        )
        service = GoodsReturnService(db_session, company.id)

        goods_return = await service.create_goods_return(
            batch_item.id, return_data(tags=["urgent"], notes="Crushed cartons"), user_id
        )

        assert goods_return.item_code == "ITM-BATCH"
        assert goods_return.item_name == "Item ITM-BATCH"
        assert goods_return.unit == "box"
        assert goods_return.batch_number == "B-77"
        assert goods_return.lot_number == "L-1"
        assert goods_return.tags == ["urgent"]
        assert goods_return.notes == "Crushed cartons"


class TestUnitCost:
    async def test_override_wins(self, db_session, company, make_item, user_id):
        priced = await make_item(company, item_code="ITM-P", cost_price=40.0, average_cost=50.0)
        service = GoodsReturnService(db_session, company.id)

        goods_return = await service.create_goods_return(priced.id, return_data(unit_cost=45.5), user_id)

        assert goods_return.unit_cost == 45.5
        assert goods_return.total_value == 45.5 * 15

    async def test_cost_price_before_average_cost(self, db_session, company, make_item, user_id):
        priced = await make_item(company, item_code="ITM-P", cost_price=40.0, average_cost=50.0)
        service = GoodsReturnService(db_session, company.id)

        goods_return = await service.create_goods_return(priced.id, return_data(), user_id)

        assert goods_return.unit_cost == 40
        assert goods_return.total_value == 600

    async def test_zero_override_falls_back(self, db_session, company, item, user_id):
        service = GoodsReturnService(db_session, company.id)

        goods_return = await service.create_goods_return(item.id, return_data(unit_cost=0), user_id)

        assert goods_return.unit_cost == 50

    async def test_negative_override_falls_back(self, db_session, company, item, user_id):
        service = GoodsReturnService(db_session, company.id)

        goods_return = await service.create_goods_return(item.id, return_data(unit_cost=-5), user_id)

        assert goods_return.unit_cost == 50
        assert goods_return.damaged_value == 500
        assert goods_return.returned_value == 250
        assert goods_return.total_value == 750

    async def test_negative_cost_price_is_skipped(self, db_session, company, make_item, user_id):
        mispriced = await make_item(company, item_code="ITM-NEG", cost_price=-12.0, average_cost=50.0)
        service = GoodsReturnService(db_session, company.id)

        goods_return = await service.create_goods_return(mispriced.id, return_data(), user_id)

        assert goods_return.unit_cost == 50

    async def test_unpriced_item_values_at_zero(self, db_session, company, make_item, user_id):
        unpriced = await make_item(company, item_code="ITM-0", average_cost=0)
        service = GoodsReturnService(db_session, company.id)

        goods_return = await service.create_goods_return(unpriced.id, return_data(), user_id)

        assert goods_return.unit_cost == 0
        assert goods_return.total_value == 0


class TestStockMovement:
    async def test_damaged_quantity_writes_outward_movement(self, db_session, company, item, user_id):
        service = GoodsReturnService(db_session, company.id)

        goods_return = await service.create_goods_return(item.id, return_data(), user_id)

        movements = (await db_session.execute(select(StockMovement))).scalars().all()
        assert len(movements) == 1
        movement = movements[0]
        assert movement.movement_type == "outward"
        assert movement.quantity == 10
        assert movement.stock_before == 100
        assert movement.stock_after == 85
        assert movement.reference_type == "goods_return"
        assert movement.reference_id == goods_return.id
        assert movement.reference_number == goods_return.return_number
        assert movement.reason == "Goods Return - Damaged: damaged"
        assert movement.notes == "Damaged goods return. Challan: DC-2026-0042"
        assert movement.tags == ["goods_return"]
        assert movement.movement_number == f"MOV-AQUA-{business_today():%Y%m%d}-00001"

    async def test_returned_only_writes_no_movement(self, db_session, company, item, user_id):
        service = GoodsReturnService(db_session, company.id)

        await service.create_goods_return(
            item.id, return_data(damaged_quantity=0, returned_quantity=4), user_id
        )

        assert await count_rows(db_session, StockMovement) == 0

    async def test_movement_failure_keeps_the_return(
        self, db_session, company, item, user_id, monkeypatch, caplog
    ):
        async def unavailable(self, values):
            raise SQLAlchemyError("movement store unavailable")

        monkeypatch.setattr(GoodsReturnService, "_write_stock_movement", unavailable)
        service = GoodsReturnService(db_session, company.id)

        with caplog.at_level(logging.WARNING, logger="app.services.goods_return_service"):
            goods_return = await service.create_goods_return(item.id, return_data(), user_id)

        assert goods_return.total_quantity == 15
        assert await count_rows(db_session, GoodsReturn) == 1
        assert await count_rows(db_session, StockMovement) == 0
        await db_session.refresh(item)
        assert item.current_stock == 85
        assert "Failed to create stock movement" in caplog.text


class TestNumberGenerationFailure:
    async def test_sequence_failure_aborts_creation(self, db_session, company, item, user_id, monkeypatch):
        async def broken(self, document_type, sequence_date=None):
            raise DocumentSequenceError("sequence table locked")

        monkeypatch.setattr(DocumentSequenceService, "get_next_number", broken)
        service = GoodsReturnService(db_session, company.id)

        with pytest.raises(ReturnNumberGenerationError) as exc_info:
            await service.create_goods_return(item.id, return_data(), user_id)
        assert exc_info.value.status_code == 500

        await db_session.refresh(item)
        assert item.current_stock == 100
        assert await count_rows(db_session, GoodsReturn) == 0
