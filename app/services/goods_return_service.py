"""Goods Return Service.

Handles damaged/returned goods filed against an outbound challan:

1. Resolve the inventory item (tenant scoped), then validate quantities and challan
2. Generate the GR number from the company's daily sequence
3. Atomically decrement stock (conditional UPDATE ... RETURNING)
4. Persist the return with its stock impact snapshot and valuation
5. Best-effort stock movement for the damaged quantity

Steps 2-4 share one transaction. The movement is written after commit and a
failure there never undoes the return.
"""
import logging
import uuid
from datetime import datetime, date, time, timedelta, timezone
from typing import Optional, List, Tuple, Dict, Any

from sqlalchemy import select, func, and_, or_, update, case, asc, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.inventory import InventoryItem, StockMovement, StockMovementType
from app.models.goods_return import (
    GoodsReturn,
    ReturnStatus,
    LIFECYCLE_STATUS_MAP,
    ACTIVE_RETURN_STATUSES,
    RETURN_TRANSITIONS,
)
from app.schemas.goods_return import GoodsReturnCreate
from app.services.document_sequence_service import (
    DocumentSequenceService,
    DocumentSequenceError,
)


logger = logging.getLogger(__name__)


SORTABLE_FIELDS = {
    "return_date": GoodsReturn.return_date,
    "return_number": GoodsReturn.return_number,
    "item_code": GoodsReturn.item_code,
    "total_quantity": GoodsReturn.total_quantity,
    "total_value": GoodsReturn.total_value,
    "created_at": GoodsReturn.created_at,
}


class GoodsReturnError(Exception):
    """Base error for goods return operations. Carries an HTTP status hint."""
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(GoodsReturnError):
    status_code = 404


class ForbiddenError(GoodsReturnError):
    status_code = 403


class ValidationError(GoodsReturnError):
    status_code = 400


class InvalidStateTransitionError(GoodsReturnError):
    status_code = 409


class ReturnNumberGenerationError(GoodsReturnError):
    status_code = 500


def _available_after(stock_expr):
    """max(0, stock - reserved) as a portable SQL expression."""
    available = stock_expr - InventoryItem.reserved_stock
    return case((available < 0, 0), else_=available)


class GoodsReturnService:
    """Service for goods return creation, workflow and reporting."""

    def __init__(self, db: AsyncSession, company_id: uuid.UUID):
        self.db = db
        self.company_id = company_id
        self.sequences = DocumentSequenceService(db, company_id)

    # ==================== CREATE ====================

    async def create_goods_return(
        self,
        inventory_item_id: uuid.UUID,
        data: GoodsReturnCreate,
        user_id: uuid.UUID,
    ) -> GoodsReturn:
        """
        Create a goods return and deduct its quantity from stock.

        Raises:
            ValidationError: negative/zero quantities, blank challan or insufficient stock
            NotFoundError: inventory item does not exist
            ForbiddenError: inventory item belongs to another company
            ReturnNumberGenerationError: GR number could not be generated
            GoodsReturnError: persistence failure
        """
        item = await self._get_inventory_item(inventory_item_id)

        damaged_quantity = data.damaged_quantity
        returned_quantity = data.returned_quantity

        if damaged_quantity < 0 or returned_quantity < 0:
            raise ValidationError("Quantities cannot be negative")

        total_quantity = damaged_quantity + returned_quantity
        if total_quantity <= 0:
            raise ValidationError("Total quantity must be greater than 0")

        challan_number = data.original_challan_number.strip()
        if not challan_number:
            raise ValidationError("Original challan number is required")

        current_stock = item.current_stock or 0
        if current_stock < total_quantity:
            raise ValidationError(
                f"Insufficient stock. Available: {current_stock}, Requested: {total_quantity}"
            )

        unit_cost = self._resolve_unit_cost(item, data.unit_cost)
        damaged_value = unit_cost * damaged_quantity
        returned_value = unit_cost * returned_quantity
        total_value = unit_cost * total_quantity

        try:
            try:
                return_number = await self.sequences.get_next_number("GR")
            except DocumentSequenceError as e:
                raise ReturnNumberGenerationError("Failed to generate return number") from e

            stock = await self._deduct_stock(item, total_quantity, damaged_quantity, returned_quantity)

            goods_return = GoodsReturn(
                return_number=return_number,
                return_date=datetime.now(timezone.utc),
                company_id=self.company_id,
                inventory_item_id=item.id,
                item_code=item.item_code,
                item_name=item.item_name,
                item_description=item.item_description,
                original_challan_number=challan_number,
                original_challan_date=data.original_challan_date,
                damaged_quantity=damaged_quantity,
                returned_quantity=returned_quantity,
                total_quantity=total_quantity,
                unit=item.unit or settings.DEFAULT_UNIT,
                return_reason=data.return_reason.value,
                return_reason_details=data.return_reason_details,
                warehouse_id=data.warehouse_id,
                warehouse_name=data.warehouse_name,
                zone=data.zone,
                rack=data.rack,
                bin=data.bin,
                inventory_stock_before=stock["current_stock"] + total_quantity,
                inventory_stock_after=stock["current_stock"],
                damaged_stock_before=stock["returns_damaged_active"] - damaged_quantity,
                damaged_stock_after=stock["returns_damaged_active"],
                returned_stock_before=stock["returns_returned_active"] - returned_quantity,
                returned_stock_after=stock["returns_returned_active"],
                unit_cost=unit_cost,
                damaged_value=damaged_value,
                returned_value=returned_value,
                total_value=total_value,
                quality_grade=data.quality_grade,
                defect_details=data.defect_details,
                batch_number=data.batch_number or item.batch_number,
                lot_number=data.lot_number or item.lot_number,
                manufacturing_date=item.manufacturing_date,
                expiry_date=item.expiry_date,
                supplier_id=data.supplier_id,
                supplier_name=data.supplier_name,
                supplier_code=data.supplier_code,
                approval_required=data.approval_required,
                return_status=(
                    ReturnStatus.PENDING.value if data.approval_required else ReturnStatus.APPROVED.value
                ),
                notes=data.notes,
                tags=list(data.tags or []),
                created_by=user_id,
            )
            self.db.add(goods_return)
            await self.db.commit()
        except GoodsReturnError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f"Error creating goods return for item {inventory_item_id} "
                f"(company {self.company_id}): {e}"
            )
            raise GoodsReturnError("Failed to create goods return") from e

        logger.info(
            f"Goods return {goods_return.return_number} created for item {item.item_code} "
            f"(company {self.company_id}): damaged={damaged_quantity}, returned={returned_quantity}"
        )

        if damaged_quantity > 0:
            await self._record_stock_movement(
                goods_return,
                movement_type=StockMovementType.OUTWARD,
                quantity=damaged_quantity,
                stock_before=goods_return.inventory_stock_before,
                stock_after=goods_return.inventory_stock_after,
                available_before=stock["available_stock_before"],
                available_after=stock["available_stock"],
                reason=f"Goods Return - Damaged: {goods_return.return_reason}",
                notes=f"Damaged goods return. Challan: {goods_return.original_challan_number}",
                user_id=user_id,
            )

        return goods_return

    def _resolve_unit_cost(self, item: InventoryItem, override: Optional[float]) -> float:
        """Explicit override, then configured cost price, then average cost."""
        for candidate in (override, item.cost_price, item.average_cost):
            if candidate is not None and candidate > 0:
                return float(candidate)
        return 0.0

    async def _get_inventory_item(self, inventory_item_id: uuid.UUID) -> InventoryItem:
        result = await self.db.execute(
            select(InventoryItem).where(InventoryItem.id == inventory_item_id)
        )
        item = result.scalar_one_or_none()
        if not item:
            raise NotFoundError("Inventory item not found")
        if item.company_id != self.company_id:
            raise ForbiddenError("Inventory item does not belong to this company")
        return item

    async def _deduct_stock(
        self,
        item: InventoryItem,
        total_quantity: int,
        damaged_quantity: int,
        returned_quantity: int,
    ) -> Dict[str, int]:
        """
        Decrement stock only if enough is on hand, in a single statement.

        Returns the post-update stock columns. Zero matched rows means another
        request consumed the stock since the pre-check.
        """
        remaining = InventoryItem.current_stock - total_quantity
        stmt = (
            update(InventoryItem)
            .where(
                InventoryItem.id == item.id,
                InventoryItem.company_id == self.company_id,
                InventoryItem.current_stock >= total_quantity,
            )
            .values(
                current_stock=remaining,
                available_stock=_available_after(remaining),
                damaged_stock=InventoryItem.damaged_stock + damaged_quantity,
                returns_damaged_active=InventoryItem.returns_damaged_active + damaged_quantity,
                returns_returned_active=InventoryItem.returns_returned_active + returned_quantity,
                total_value=remaining * func.coalesce(InventoryItem.average_cost, 0),
                stock_version=InventoryItem.stock_version + 1,
                last_stock_update=datetime.now(timezone.utc),
            )
            .returning(
                InventoryItem.current_stock,
                InventoryItem.available_stock,
                InventoryItem.returns_damaged_active,
                InventoryItem.returns_returned_active,
            )
            .execution_options(synchronize_session=False)
        )
        available_before = item.available_stock or 0
        row = (await self.db.execute(stmt)).one_or_none()

        if row is None:
            await self.db.refresh(item)
            raise ValidationError(
                f"Insufficient stock. Available: {item.current_stock or 0}, Requested: {total_quantity}"
            )

        await self.db.refresh(item)
        return {
            "current_stock": row.current_stock,
            "available_stock": row.available_stock,
            "available_stock_before": available_before,
            "returns_damaged_active": row.returns_damaged_active,
            "returns_returned_active": row.returns_returned_active,
        }

    # ==================== STOCK MOVEMENT (best-effort) ====================

    async def _record_stock_movement(
        self,
        goods_return: GoodsReturn,
        movement_type: StockMovementType,
        quantity: int,
        stock_before: int,
        stock_after: int,
        available_before: int,
        available_after: int,
        reason: str,
        notes: str,
        user_id: uuid.UUID,
    ) -> Optional[StockMovement]:
        """
        Write the audit movement for a committed return.

        Retries up to STOCK_MOVEMENT_MAX_ATTEMPTS times, then logs and gives
        up. The goods return stays committed either way.
        """
        values = {
            "company_id": self.company_id,
            "movement_type": movement_type.value,
            "inventory_item_id": goods_return.inventory_item_id,
            "item_code": goods_return.item_code,
            "item_name": goods_return.item_name,
            "quantity": quantity,
            "unit": goods_return.unit,
            "rate": goods_return.unit_cost,
            "total_value": (goods_return.unit_cost or 0) * quantity,
            "warehouse_id": goods_return.warehouse_id,
            "warehouse_name": goods_return.warehouse_name,
            "reference_type": "goods_return",
            "reference_id": goods_return.id,
            "reference_number": goods_return.return_number,
            "stock_before": stock_before,
            "stock_after": stock_after,
            "available_before": available_before,
            "available_after": available_after,
            "reason": reason,
            "notes": notes,
            "tags": ["goods_return"],
            "created_by": user_id,
        }

        attempts = max(1, settings.STOCK_MOVEMENT_MAX_ATTEMPTS)
        stock_movement = None
        failed = False
        for attempt in range(1, attempts + 1):
            try:
                stock_movement = await self._write_stock_movement(values)
                await self.db.commit()
                break
            except (SQLAlchemyError, DocumentSequenceError) as e:
                failed = True
                stock_movement = None
                await self.db.rollback()
                logger.warning(
                    f"Failed to create stock movement for goods return {values['reference_number']} "
                    f"(attempt {attempt}/{attempts}): {e}"
                )

        if failed:
            # Rollback expired the already committed return
            await self.db.refresh(goods_return)
        return stock_movement

    async def _write_stock_movement(self, values: Dict[str, Any]) -> StockMovement:
        """Single attempt: number the movement and flush it."""
        stock_movement = StockMovement(
            movement_number=await self.sequences.get_next_number("MOV"),
            movement_date=datetime.now(timezone.utc),
            **values,
        )
        self.db.add(stock_movement)
        await self.db.flush()
        return stock_movement

    # ==================== WORKFLOW ====================

    async def approve_goods_return(
        self, return_id: uuid.UUID, user_id: uuid.UUID, notes: Optional[str] = None
    ) -> GoodsReturn:
        return await self._transition(return_id, "approve", user_id, notes)

    async def reject_goods_return(
        self, return_id: uuid.UUID, user_id: uuid.UUID, reason: str
    ) -> GoodsReturn:
        """Reject a pending return and put its quantity back into stock."""
        return await self._transition(return_id, "reject", user_id, reason)

    async def mark_as_processed(
        self, return_id: uuid.UUID, user_id: uuid.UUID, notes: Optional[str] = None
    ) -> GoodsReturn:
        return await self._transition(return_id, "process", user_id, notes)

    async def cancel_goods_return(
        self, return_id: uuid.UUID, user_id: uuid.UUID, notes: Optional[str] = None
    ) -> GoodsReturn:
        """Cancel a pending or approved return and put its quantity back into stock."""
        return await self._transition(return_id, "cancel", user_id, notes)

    async def _transition(
        self,
        return_id: uuid.UUID,
        action: str,
        user_id: uuid.UUID,
        notes: Optional[str],
    ) -> GoodsReturn:
        goods_return = await self.get_goods_return(return_id)
        current = goods_return.return_status
        target = RETURN_TRANSITIONS.get(current, {}).get(action)
        if target is None:
            raise InvalidStateTransitionError(f"Cannot {action} a goods return that is {current}")

        now = datetime.now(timezone.utc)
        values: Dict[str, Any] = {
            "return_status": target,
            "last_modified_by": user_id,
            "updated_at": now,
        }
        if action == "approve":
            values.update(approved_by=user_id, approved_at=now, approval_notes=notes)
        elif action == "reject":
            values.update(approved_by=user_id, approval_notes=notes, cancelled_at=now)
        elif action == "process":
            values["processed_at"] = now
            if notes:
                values["notes"] = notes
        elif action == "cancel":
            values["cancelled_at"] = now
            if notes:
                values["notes"] = notes

        reversal = None
        try:
            # Compare-and-set on the status guards against a concurrent transition
            result = await self.db.execute(
                update(GoodsReturn)
                .where(
                    GoodsReturn.id == goods_return.id,
                    GoodsReturn.company_id == self.company_id,
                    GoodsReturn.return_status == current,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidStateTransitionError(
                    f"Goods return {goods_return.return_number} changed state concurrently"
                )

            if target in (ReturnStatus.REJECTED.value, ReturnStatus.CANCELLED.value):
                reversal = await self._restore_stock(goods_return)
            else:
                await self._release_active_totals(goods_return, target)

            await self.db.commit()
        except GoodsReturnError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Error applying '{action}' to goods return {goods_return.return_number}: {e}")
            raise GoodsReturnError(f"Failed to {action} goods return") from e

        await self.db.refresh(goods_return)
        logger.info(
            f"Goods return {goods_return.return_number} {current} -> {target} "
            f"by {user_id} (company {self.company_id})"
        )

        if reversal and goods_return.damaged_quantity > 0:
            await self._record_stock_movement(
                goods_return,
                movement_type=StockMovementType.INWARD,
                quantity=goods_return.damaged_quantity,
                stock_before=reversal["current_stock"] - goods_return.total_quantity,
                stock_after=reversal["current_stock"],
                available_before=reversal["available_stock_before"],
                available_after=reversal["available_stock"],
                reason=f"Goods Return {target}: {goods_return.return_reason}",
                notes=f"Reversal of {goods_return.return_number}. Challan: {goods_return.original_challan_number}",
                user_id=user_id,
            )

        return goods_return

    async def _release_active_totals(self, goods_return: GoodsReturn, target: str) -> None:
        """Drop a return from the item's active totals once it leaves the active states."""
        if target in ACTIVE_RETURN_STATUSES:
            return
        await self.db.execute(
            update(InventoryItem)
            .where(
                InventoryItem.id == goods_return.inventory_item_id,
                InventoryItem.company_id == self.company_id,
            )
            .values(
                returns_damaged_active=InventoryItem.returns_damaged_active - goods_return.damaged_quantity,
                returns_returned_active=InventoryItem.returns_returned_active - goods_return.returned_quantity,
                stock_version=InventoryItem.stock_version + 1,
            )
            .execution_options(synchronize_session=False)
        )

    async def _restore_stock(self, goods_return: GoodsReturn) -> Dict[str, int]:
        """Reverse the stock impact of a rejected or cancelled return."""
        restored = InventoryItem.current_stock + goods_return.total_quantity
        damaged_left = InventoryItem.damaged_stock - goods_return.damaged_quantity

        before = await self.db.execute(
            select(InventoryItem.available_stock).where(InventoryItem.id == goods_return.inventory_item_id)
        )
        available_before = before.scalar_one_or_none() or 0

        row = (await self.db.execute(
            update(InventoryItem)
            .where(
                InventoryItem.id == goods_return.inventory_item_id,
                InventoryItem.company_id == self.company_id,
            )
            .values(
                current_stock=restored,
                available_stock=_available_after(restored),
                damaged_stock=case((damaged_left < 0, 0), else_=damaged_left),
                returns_damaged_active=InventoryItem.returns_damaged_active - goods_return.damaged_quantity,
                returns_returned_active=InventoryItem.returns_returned_active - goods_return.returned_quantity,
                total_value=restored * func.coalesce(InventoryItem.average_cost, 0),
                stock_version=InventoryItem.stock_version + 1,
                last_stock_update=datetime.now(timezone.utc),
            )
            .returning(InventoryItem.current_stock, InventoryItem.available_stock)
            .execution_options(synchronize_session=False)
        )).one_or_none()

        if row is None:
            raise NotFoundError("Inventory item not found")

        return {
            "current_stock": row.current_stock,
            "available_stock": row.available_stock,
            "available_stock_before": available_before,
        }

    # ==================== QUERIES ====================

    async def get_goods_return(self, return_id: uuid.UUID) -> GoodsReturn:
        result = await self.db.execute(
            select(GoodsReturn).where(
                GoodsReturn.id == return_id,
                GoodsReturn.company_id == self.company_id,
            )
        )
        goods_return = result.scalar_one_or_none()
        if not goods_return:
            raise NotFoundError("Goods return not found")
        return goods_return

    async def list_goods_returns(
        self,
        status: Optional[str] = None,
        return_status: Optional[str] = None,
        return_reason: Optional[str] = None,
        challan_number: Optional[str] = None,
        inventory_item_id: Optional[uuid.UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        search: Optional[str] = None,
        sort_by: str = "return_date",
        sort_order: str = "desc",
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[GoodsReturn], int]:
        """Get paginated, filtered list of goods returns."""
        conditions = [GoodsReturn.company_id == self.company_id]

        if status:
            states = LIFECYCLE_STATUS_MAP.get(status)
            if states is None:
                raise ValidationError(f"Invalid status '{status}'")
            conditions.append(GoodsReturn.return_status.in_(states))
        if return_status:
            conditions.append(GoodsReturn.return_status == return_status)
        if return_reason:
            conditions.append(GoodsReturn.return_reason == return_reason)
        if challan_number:
            conditions.append(GoodsReturn.original_challan_number.ilike(f"%{challan_number}%"))
        if inventory_item_id:
            conditions.append(GoodsReturn.inventory_item_id == inventory_item_id)
        if date_from:
            conditions.append(GoodsReturn.return_date >= _day_start_utc(date_from))
        if date_to:
            conditions.append(GoodsReturn.return_date < _day_start_utc(date_to + timedelta(days=1)))
        if search:
            conditions.append(
                or_(
                    GoodsReturn.item_code.ilike(f"%{search}%"),
                    GoodsReturn.item_name.ilike(f"%{search}%"),
                    GoodsReturn.return_number.ilike(f"%{search}%"),
                    GoodsReturn.original_challan_number.ilike(f"%{search}%"),
                )
            )

        query = select(GoodsReturn).where(and_(*conditions))

        # Count
        count_query = select(func.count()).select_from(query.subquery())
        total = await self.db.scalar(count_query)

        # Sort + paginate
        sort_column = SORTABLE_FIELDS.get(sort_by, GoodsReturn.return_date)
        order = asc if sort_order == "asc" else desc
        query = query.order_by(order(sort_column), desc(GoodsReturn.return_number)).offset(skip).limit(limit)
        result = await self.db.execute(query)

        return list(result.scalars().all()), total or 0

    async def get_returns_by_item(self, inventory_item_id: uuid.UUID) -> List[GoodsReturn]:
        """Active returns for one inventory item, newest first."""
        result = await self.db.execute(
            select(GoodsReturn)
            .where(
                GoodsReturn.company_id == self.company_id,
                GoodsReturn.inventory_item_id == inventory_item_id,
                GoodsReturn.return_status.in_(ACTIVE_RETURN_STATUSES),
            )
            .order_by(desc(GoodsReturn.return_date), desc(GoodsReturn.return_number))
        )
        return list(result.scalars().all())

    async def get_returns_by_challan(self, challan_number: str) -> List[GoodsReturn]:
        """Active returns filed against a challan, newest first."""
        result = await self.db.execute(
            select(GoodsReturn)
            .where(
                GoodsReturn.company_id == self.company_id,
                GoodsReturn.original_challan_number == challan_number,
                GoodsReturn.return_status.in_(ACTIVE_RETURN_STATUSES),
            )
            .order_by(desc(GoodsReturn.return_date), desc(GoodsReturn.return_number))
        )
        return list(result.scalars().all())

    async def get_challan_return_summary(self, challan_number: str) -> Dict[str, Any]:
        returns = await self.get_returns_by_challan(challan_number)
        return {
            "challan_number": challan_number,
            "total_returns": len(returns),
            "total_damaged_quantity": sum(r.damaged_quantity or 0 for r in returns),
            "total_returned_quantity": sum(r.returned_quantity or 0 for r in returns),
            "total_value": sum(r.total_value or 0 for r in returns),
            "returns": returns,
        }

    async def get_reason_summary(self) -> List[Dict[str, Any]]:
        """Active returns grouped by return reason."""
        result = await self.db.execute(
            select(
                GoodsReturn.return_reason,
                func.count().label("count"),
                func.coalesce(func.sum(GoodsReturn.damaged_quantity), 0).label("damaged"),
                func.coalesce(func.sum(GoodsReturn.returned_quantity), 0).label("returned"),
                func.coalesce(func.sum(GoodsReturn.total_value), 0).label("value"),
            )
            .where(
                GoodsReturn.company_id == self.company_id,
                GoodsReturn.return_status.in_(ACTIVE_RETURN_STATUSES),
            )
            .group_by(GoodsReturn.return_reason)
            .order_by(GoodsReturn.return_reason)
        )
        return [
            {
                "return_reason": row.return_reason,
                "count": row.count,
                "total_damaged_quantity": int(row.damaged),
                "total_returned_quantity": int(row.returned),
                "total_value": float(row.value),
            }
            for row in result.all()
        ]

    async def preview_next_return_number(self) -> str:
        return await self.sequences.preview_next_number("GR")


def _day_start_utc(day: date) -> datetime:
    """Midnight of a business day, expressed in UTC."""
    business_tz = timezone(timedelta(minutes=settings.BUSINESS_UTC_OFFSET_MINUTES))
    return datetime.combine(day, time.min, tzinfo=business_tz).astimezone(timezone.utc)
