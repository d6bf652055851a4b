"""
Manufacturing Models
SQLAlchemy models for manufacturing orders and multi-stage process costing
"""
from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, Boolean, Text,
    ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from stock_costing.core.database import Base


class WorkCenter(Base):
    """Work Center - where labor and overhead are incurred"""
    __tablename__ = "work_centers"

    id = Column(String(60), primary_key=True, doc="Work center code")
    name = Column(String(100), nullable=False, doc="Work center name")
    is_default = Column(Boolean, nullable=False, default=False, doc="Used when no work center is given")
    is_active = Column(Boolean, nullable=False, default=True, doc="Active flag")


class ManufacturingStage(Base):
    """Manufacturing Stage - a named step with its position in the route"""
    __tablename__ = "manufacturing_stages"

    id = Column(String(60), primary_key=True, doc="Stage code")
    name = Column(String(100), nullable=False, doc="Stage name")
    order_sequence = Column(Integer, nullable=False, unique=True, doc="Stage ordinal, 1 for the first stage")
    description = Column(Text, doc="Stage description")


class ManufacturingOrder(Base):
    """Manufacturing Order - production of one finished item"""
    __tablename__ = "manufacturing_orders"

    id = Column(String(60), primary_key=True, doc="Order ID")
    order_number = Column(String(60), unique=True, nullable=False, doc="Order number")
    item_id = Column(String(60), nullable=False, doc="Finished item code")
    planned_qty = Column(Numeric(18, 3), nullable=False, default=0, doc="Quantity to produce")
    completed_qty = Column(Numeric(18, 3), nullable=False, default=0, doc="Quantity received into stock")
    standard_cost = Column(Numeric(18, 4), doc="Standard cost per unit")
    status = Column(String(20), nullable=False, default="draft", doc="draft, in_process or completed")

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    stage_costs = relationship("StageCost", back_populates="order", order_by="StageCost.stage_no")

    @property
    def is_finished(self) -> bool:
        return self.status == "completed"


class StageCost(Base):
    """
    Stage Cost - accumulated cost of one stage of one order

    total = material + labor + overhead + transferred-in;
    unit = total / good_qty (0 when nothing good was produced).
    """
    __tablename__ = "stage_costs"
    __table_args__ = (
        UniqueConstraint("mo_id", "stage_no", name="uq_stage_costs_order_stage"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    mo_id = Column(String(60), ForeignKey("manufacturing_orders.id"), nullable=False, doc="Manufacturing order")
    stage_no = Column(Integer, nullable=False, doc="Stage ordinal")
    stage_id = Column(String(60), ForeignKey("manufacturing_stages.id"), doc="Stage code when known")
    work_center_id = Column(String(60), ForeignKey("work_centers.id"), doc="Work center")

    # Quantities
    good_qty = Column(Numeric(18, 3), nullable=False, default=0, doc="Good output")
    scrap_qty = Column(Numeric(18, 3), nullable=False, default=0, doc="Scrapped output")
    rework_qty = Column(Numeric(18, 3), nullable=False, default=0, doc="Output sent for rework")

    # Costs
    material_cost = Column(Numeric(18, 2), nullable=False, default=0, doc="Direct material")
    labor_cost = Column(Numeric(18, 2), nullable=False, default=0, doc="Sum of labor logs")
    overhead_cost = Column(Numeric(18, 2), nullable=False, default=0, doc="Sum of applied overhead")
    transferred_in_cost = Column(Numeric(18, 2), nullable=False, default=0, doc="Prior stage total")
    total_cost = Column(Numeric(18, 2), nullable=False, default=0, doc="Total stage cost")
    unit_cost = Column(Numeric(18, 4), nullable=False, default=0, doc="Cost per good unit")

    status = Column(String(20), nullable=False, default="actual", doc="precosted, actual or completed")
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    order = relationship("ManufacturingOrder", back_populates="stage_costs")


class LaborTimeLog(Base):
    """Labor Time Log - hours booked against an order stage"""
    __tablename__ = "labor_time_logs"
    __table_args__ = (
        Index("ix_labor_time_logs_order_stage", "mo_id", "stage_no"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    mo_id = Column(String(60), ForeignKey("manufacturing_orders.id"), nullable=False)
    stage_no = Column(Integer, nullable=False)
    work_center_id = Column(String(60), ForeignKey("work_centers.id"), nullable=False)
    employee_name = Column(String(100), doc="Employee")
    operation_code = Column(String(30), doc="Operation")
    hours = Column(Numeric(12, 3), nullable=False, doc="Hours worked")
    hourly_rate = Column(Numeric(18, 4), nullable=False, doc="Rate per hour")
    total_cost = Column(Numeric(18, 2), nullable=False, doc="hours x hourly_rate")
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())


class OverheadApplied(Base):
    """Overhead Applied - overhead absorbed by an order stage"""
    __tablename__ = "overhead_applied"
    __table_args__ = (
        Index("ix_overhead_applied_order_stage", "mo_id", "stage_no"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    mo_id = Column(String(60), ForeignKey("manufacturing_orders.id"), nullable=False)
    stage_no = Column(Integer, nullable=False)
    work_center_id = Column(String(60), ForeignKey("work_centers.id"), nullable=False)
    allocation_base = Column(String(30), nullable=False, default="labor_cost", doc="Basis of the base quantity")
    base_qty = Column(Numeric(18, 3), nullable=False, doc="Quantity of the allocation base")
    overhead_rate = Column(Numeric(18, 4), nullable=False, doc="Rate per unit of base")
    amount = Column(Numeric(18, 2), nullable=False, doc="base_qty x overhead_rate")
    overhead_type = Column(String(30), default="variable", doc="fixed or variable")
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
