"""
Process Costing Service
Accumulates stage costs for manufacturing orders:
stage total = material + labor + overhead + transferred-in
"""
from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal
from typing import List, Optional, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock_costing.core.exceptions import (
    BusinessLogicError, NotFoundError, PersistenceError, StockCostingException, ValidationError
)
from stock_costing.core.locks import KeyedLockRegistry, stage_key_locks
from stock_costing.core.logging import get_logger
from stock_costing.core.precision import ZERO, round_currency, round_qty, round_rate, to_decimal
from stock_costing.models.manufacturing import (
    LaborTimeLog, ManufacturingOrder, ManufacturingStage, OverheadApplied, StageCost, WorkCenter
)
from stock_costing.repositories.base import CostingRepository
from stock_costing.repositories.sql import SqlCostingRepository
from stock_costing.services.stock.ledger import LedgerPostingResult, StockMovementRequest
from stock_costing.services.stock.movements import StockMovementService

logger = get_logger("costing")

STAGE_COST_MODES = ("precosted", "actual", "completed")
CONSUMPTION_VOUCHER_TYPE = "Manufacturing Consumption"
MANUFACTURE_VOUCHER_TYPE = "Manufacture"

StageRef = Union[int, str]


@dataclass
class MaterialIssueResult:
    """Materials issued to an order stage and what they cost"""
    posting: LedgerPostingResult
    stage_no: int
    material_cost: Decimal


@dataclass
class OrderCostSummary:
    """Cost roll-up of a manufacturing order"""
    order_id: str
    order_number: str
    item_id: str
    planned_qty: Decimal
    completed_qty: Decimal
    total_material_cost: Decimal
    total_labor_cost: Decimal
    total_overhead_cost: Decimal
    total_cost: Decimal
    unit_cost: Decimal
    standard_cost: Optional[Decimal] = None
    standard_total_cost: Optional[Decimal] = None
    variance: Optional[Decimal] = None
    variance_percentage: Optional[Decimal] = None
    stage_costs: List[StageCost] = field(default_factory=list)


class ProcessCostingService:
    """
    Process costing accumulator

    Labor and overhead are appended as facts and only summed when a stage
    cost is upserted, so a stage cost reflects the logs present at the time
    of its last upsert. Each stage carries forward the stored total of the
    nearest earlier stage as transferred-in cost.
    """

    def __init__(
        self,
        db: Optional[Session] = None,
        repository: Optional[CostingRepository] = None,
        locks: KeyedLockRegistry = stage_key_locks,
        stock_movements: Optional[StockMovementService] = None
    ):
        self.db = db
        self.repo = repository or SqlCostingRepository(db)
        self.locks = locks
        self._stock_movements = stock_movements

    @property
    def stock_movements(self) -> StockMovementService:
        if self._stock_movements is None:
            if self.db is None:
                raise RuntimeError(
                    "Stock postings need a database session or a stock_movements service; "
                    "pass one of them to ProcessCostingService"
                )
            self._stock_movements = StockMovementService(self.db)
        return self._stock_movements

    # Lookups

    def _get_order(self, order_id: str, for_update: bool = False) -> ManufacturingOrder:
        if not order_id:
            raise ValidationError("Manufacturing order ID is required")
        order = self.repo.get_order(order_id, for_update=for_update)
        if order is None:
            raise NotFoundError(f"Manufacturing order {order_id} not found")
        return order

    def _get_open_order(self, order_id: str, for_update: bool = False) -> ManufacturingOrder:
        order = self._get_order(order_id, for_update=for_update)
        if order.is_finished:
            raise BusinessLogicError(f"Manufacturing order {order.order_number} is completed; costs are locked")
        return order

    def resolve_stage(self, stage: StageRef) -> Tuple[int, Optional[ManufacturingStage]]:
        """
        Resolve a stage reference to its ordinal.

        Integers are ordinals. Strings are stage ids looked up in the stage
        master; an unknown id is an error, never a default.
        """
        if stage is None or stage == "":
            raise ValidationError("Stage is required. Provide a stage number or stage ID")

        if isinstance(stage, bool):
            raise ValidationError(f"Invalid stage reference {stage!r}")

        if isinstance(stage, int):
            if stage < 1:
                raise ValidationError(f"Stage number must be 1 or greater, got {stage}")
            return stage, self.repo.get_stage_by_sequence(stage)

        record = self.repo.get_stage(str(stage))
        if record is None:
            raise NotFoundError(f"Manufacturing stage {stage} not found")
        return record.order_sequence, record

    def resolve_work_center(self, work_center_id: Optional[str] = None) -> WorkCenter:
        """Explicit work center if given, else the default one"""
        if work_center_id:
            work_center = self.repo.get_work_center(work_center_id)
            if work_center is None:
                raise NotFoundError(f"Work center {work_center_id} not found")
            return work_center

        work_center = self.repo.get_default_work_center()
        if work_center is None:
            raise NotFoundError("workCenterId is required. No default work center found.")
        return work_center

    # Cost facts

    def apply_labor_time(
        self,
        order_id: str,
        stage: StageRef,
        hours,
        hourly_rate,
        work_center_id: Optional[str] = None,
        employee_name: Optional[str] = None,
        operation_code: Optional[str] = None,
        notes: Optional[str] = None
    ) -> LaborTimeLog:
        """Book labor hours against an order stage"""
        hours, hourly_rate = to_decimal(hours), to_decimal(hourly_rate)
        if hours <= 0:
            raise ValidationError("Labor hours must be greater than zero")
        if hourly_rate <= 0:
            raise ValidationError("Hourly rate must be greater than zero")

        order = self._get_open_order(order_id)
        stage_no, _ = self.resolve_stage(stage)
        work_center = self.resolve_work_center(work_center_id)

        log = LaborTimeLog(
            mo_id=order.id,
            stage_no=stage_no,
            work_center_id=work_center.id,
            employee_name=employee_name,
            operation_code=operation_code,
            hours=round_qty(hours),
            hourly_rate=round_rate(hourly_rate),
            total_cost=round_currency(hours * hourly_rate),
            notes=notes
        )
        self._persist(log, f"labor time for {order.order_number} stage {stage_no}")
        logger.info(
            f"Labor {hours}h x {hourly_rate} = {log.total_cost} on {order.order_number} "
            f"stage {stage_no} ({work_center.id})"
        )
        return log

    def apply_overhead(
        self,
        order_id: str,
        stage: StageRef,
        base_qty,
        overhead_rate,
        work_center_id: Optional[str] = None,
        allocation_base: str = "labor_cost",
        overhead_type: str = "variable",
        notes: Optional[str] = None
    ) -> OverheadApplied:
        """Absorb overhead into an order stage"""
        base_qty, overhead_rate = to_decimal(base_qty), to_decimal(overhead_rate)
        if base_qty <= 0:
            raise ValidationError("Overhead base quantity must be greater than zero")
        if overhead_rate <= 0:
            raise ValidationError("Overhead rate must be greater than zero")

        order = self._get_open_order(order_id)
        stage_no, _ = self.resolve_stage(stage)
        work_center = self.resolve_work_center(work_center_id)

        record = OverheadApplied(
            mo_id=order.id,
            stage_no=stage_no,
            work_center_id=work_center.id,
            allocation_base=allocation_base,
            base_qty=round_qty(base_qty),
            overhead_rate=round_rate(overhead_rate),
            amount=round_currency(base_qty * overhead_rate),
            overhead_type=overhead_type,
            notes=notes
        )
        self._persist(record, f"overhead for {order.order_number} stage {stage_no}")
        logger.info(
            f"Overhead {base_qty} x {overhead_rate} = {record.amount} on {order.order_number} "
            f"stage {stage_no} ({work_center.id})"
        )
        return record

    def _persist(self, record, description: str):
        try:
            self.repo.add(record)
            self.repo.commit()
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(f"Failed to record {description}: {e}")
            raise PersistenceError(f"Failed to record {description}: {e}") from e

    # Stage costs

    def upsert_stage_cost(
        self,
        order_id: str,
        stage: StageRef,
        good_qty,
        scrap_qty=ZERO,
        material_cost=ZERO,
        mode: str = "actual",
        work_center_id: Optional[str] = None,
        rework_qty=ZERO
    ) -> StageCost:
        """Recompute and store the cost of one order stage"""
        good_qty, scrap_qty, rework_qty = to_decimal(good_qty), to_decimal(scrap_qty), to_decimal(rework_qty)
        material_cost = to_decimal(material_cost)
        for name, value in (("Good quantity", good_qty), ("Scrap quantity", scrap_qty),
                            ("Rework quantity", rework_qty), ("Material cost", material_cost)):
            if value < 0:
                raise ValidationError(f"{name} cannot be negative")
        mode = (mode or "actual").lower()
        if mode not in STAGE_COST_MODES:
            raise ValidationError(f"Mode must be one of {', '.join(STAGE_COST_MODES)}")

        order = self._get_open_order(order_id)
        stage_no, stage_record = self.resolve_stage(stage)
        work_center = self.resolve_work_center(work_center_id) if work_center_id else None

        with self.locks.hold((order.id, stage_no)):
            try:
                labor_cost = round_currency(self.repo.sum_labor_cost(order.id, stage_no))
                overhead_cost = round_currency(self.repo.sum_overhead_cost(order.id, stage_no))

                previous = self.repo.previous_stage_cost(order.id, stage_no)
                transferred_in_cost = round_currency(previous.total_cost) if previous is not None else ZERO

                total_cost = round_currency(material_cost + labor_cost + overhead_cost + transferred_in_cost)
                unit_cost = round_rate(total_cost / good_qty) if good_qty > 0 else ZERO

                stage_cost = self.repo.get_stage_cost(order.id, stage_no, for_update=True)
                if stage_cost is None:
                    stage_cost = StageCost(mo_id=order.id, stage_no=stage_no)
                    self.repo.add(stage_cost)

                stage_cost.stage_id = stage_record.id if stage_record is not None else stage_cost.stage_id
                if work_center is not None:
                    stage_cost.work_center_id = work_center.id
                stage_cost.good_qty = round_qty(good_qty)
                stage_cost.scrap_qty = round_qty(scrap_qty)
                stage_cost.rework_qty = round_qty(rework_qty)
                stage_cost.material_cost = round_currency(material_cost)
                stage_cost.labor_cost = labor_cost
                stage_cost.overhead_cost = overhead_cost
                stage_cost.transferred_in_cost = transferred_in_cost
                stage_cost.total_cost = total_cost
                stage_cost.unit_cost = unit_cost
                stage_cost.status = mode

                if order.status == "draft":
                    order.status = "in_process"

                self.repo.flush()
                self.repo.commit()

            except SQLAlchemyError as e:
                self.repo.rollback()
                logger.error(f"Failed to upsert stage cost {order.order_number}/{stage_no}: {e}")
                raise PersistenceError(f"Failed to upsert stage cost: {e}") from e

        logger.info(
            f"Stage cost {order.order_number}/{stage_no}: material={stage_cost.material_cost} "
            f"labor={labor_cost} overhead={overhead_cost} transferred_in={transferred_in_cost} "
            f"total={total_cost} unit={unit_cost}"
        )
        return stage_cost

    def get_stage_costs(self, order_id: str) -> List[StageCost]:
        order = self._get_order(order_id)
        return self.repo.list_stage_costs(order.id)

    def get_order_cost_summary(self, order_id: str) -> OrderCostSummary:
        """
        Roll up stage costs for an order.

        Transferred-in cost is left out of the totals because it is already
        counted in the stage it came from. Unit cost is based on the order's
        completed quantity. Variance is reported only when the order has a
        standard cost.
        """
        order = self._get_order(order_id)
        stage_costs = self.repo.list_stage_costs(order.id)

        total_material = sum((to_decimal(sc.material_cost) for sc in stage_costs), ZERO)
        total_labor = sum((to_decimal(sc.labor_cost) for sc in stage_costs), ZERO)
        total_overhead = sum((to_decimal(sc.overhead_cost) for sc in stage_costs), ZERO)
        total_cost = round_currency(total_material + total_labor + total_overhead)

        completed_qty = to_decimal(order.completed_qty)
        unit_cost = round_rate(total_cost / completed_qty) if completed_qty > 0 else ZERO

        summary = OrderCostSummary(
            order_id=order.id,
            order_number=order.order_number,
            item_id=order.item_id,
            planned_qty=to_decimal(order.planned_qty),
            completed_qty=completed_qty,
            total_material_cost=round_currency(total_material),
            total_labor_cost=round_currency(total_labor),
            total_overhead_cost=round_currency(total_overhead),
            total_cost=total_cost,
            unit_cost=unit_cost,
            stage_costs=stage_costs
        )

        if order.standard_cost is not None:
            standard_cost = to_decimal(order.standard_cost)
            standard_total = round_currency(standard_cost * completed_qty)
            variance = round_currency(total_cost - standard_total)
            summary.standard_cost = standard_cost
            summary.standard_total_cost = standard_total
            summary.variance = variance
            summary.variance_percentage = (
                round_currency(variance / standard_total * 100) if standard_total > 0 else ZERO
            )

        return summary

    # Inventory hand-offs

    def issue_materials(
        self,
        order_id: str,
        stage: StageRef,
        item_id: str,
        location_id: str,
        qty,
        posting_date: date,
        posting_time: Optional[time] = None
    ) -> MaterialIssueResult:
        """
        Issue raw material from stock to an order stage.

        Returns the cost of the goods removed for the caller to pass on as
        the stage's material cost.
        """
        qty = round_qty(qty)
        if qty <= 0:
            raise ValidationError("Material quantity must be greater than zero")
        order = self._get_open_order(order_id)
        stage_no, _ = self.resolve_stage(stage)

        posting = self.stock_movements.ledger.append(StockMovementRequest(
            voucher_type=CONSUMPTION_VOUCHER_TYPE,
            voucher_id=order.id,
            voucher_detail_no=f"stage-{stage_no}",
            item_id=item_id,
            location_id=location_id,
            actual_qty=-qty,
            posting_date=posting_date,
            posting_time=posting_time
        ))
        material_cost = round_currency(posting.cost_of_goods_sold)
        logger.info(
            f"Issued {qty} of {item_id} from {location_id} to {order.order_number} "
            f"stage {stage_no}: cost {material_cost}"
        )
        return MaterialIssueResult(posting=posting, stage_no=stage_no, material_cost=material_cost)

    def receive_finished_goods(
        self,
        order_id: str,
        location_id: str,
        qty,
        posting_date: date,
        posting_time: Optional[time] = None
    ) -> LedgerPostingResult:
        """
        Receive finished output into stock at the last stage's unit cost.

        The last stored stage is marked completed and the order's completed
        quantity grows by qty; ledger entry and order update commit together.
        """
        qty = round_qty(qty)
        if qty <= 0:
            raise ValidationError("Finished quantity must be greater than zero")
        order = self._get_open_order(order_id, for_update=True)

        stage_costs = self.repo.list_stage_costs(order.id)
        if not stage_costs:
            raise BusinessLogicError(f"Order {order.order_number} has no stage costs to value its output")
        final_stage = stage_costs[-1]
        unit_cost = to_decimal(final_stage.unit_cost)
        if unit_cost <= 0:
            raise BusinessLogicError(
                f"Final stage {final_stage.stage_no} of {order.order_number} has no unit cost"
            )

        try:
            posting = self.stock_movements.ledger.append(StockMovementRequest(
                voucher_type=MANUFACTURE_VOUCHER_TYPE,
                voucher_id=order.id,
                voucher_detail_no=f"stage-{final_stage.stage_no}",
                item_id=order.item_id,
                location_id=location_id,
                actual_qty=qty,
                posting_date=posting_date,
                posting_time=posting_time,
                incoming_rate=unit_cost
            ), commit=False)

            final_stage.status = "completed"
            order.completed_qty = round_qty(to_decimal(order.completed_qty) + qty)
            if order.status == "draft":
                order.status = "in_process"
            self.repo.flush()
            self.repo.commit()

        except StockCostingException:
            self.repo.rollback()
            raise
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(f"Failed to receive output of {order.order_number}: {e}")
            raise PersistenceError(f"Failed to receive finished goods: {e}") from e

        logger.info(
            f"Received {qty} of {order.item_id} into {location_id} from {order.order_number} "
            f"at {unit_cost}"
        )
        return posting

    def finish_order(self, order_id: str) -> ManufacturingOrder:
        """Close an order; its stage costs become read-only"""
        order = self._get_open_order(order_id, for_update=True)
        order.status = "completed"
        try:
            self.repo.flush()
            self.repo.commit()
        except SQLAlchemyError as e:
            self.repo.rollback()
            raise PersistenceError(f"Failed to finish order {order_id}: {e}") from e
        logger.info(f"Manufacturing order {order.order_number} completed")
        return order
