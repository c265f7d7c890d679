"""ORM Models for the nursing workforce dashboard — SQLAlchemy 2.0"""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional
from sqlalchemy import (
    JSON, String, Boolean, Integer, Numeric, DateTime, Date,
    ForeignKey, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from app.db import Base

# JSONB on Postgres, plain JSON elsewhere (the test suite runs on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ── WARDS ─────────────────────────────────────────────────────────────────────
class NursingWard(Base):
    __tablename__ = "nursing_wards"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    dept_type: Mapped[str] = mapped_column(String(10), nullable=False)  # IPD | OPD | ER | LR
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # {"groups": [{"name", "fields": [{"key", "label", "multiplier"}]}], "shifts": [...]}
    opd_fields_config: Mapped[Optional[dict]] = mapped_column(JSONType)
    # dim_ward.ward_key integers, e.g. [3, 7]
    his_ward_keys: Mapped[Optional[list]] = mapped_column(JSONType)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    ipd_shifts: Mapped[list["IpdDailyShift"]] = relationship(
        "IpdDailyShift", back_populates="ward", cascade="all, delete-orphan"
    )
    ipd_summaries: Mapped[list["IpdDailySummary"]] = relationship(
        "IpdDailySummary", back_populates="ward", cascade="all, delete-orphan"
    )
    opd_shifts: Mapped[list["OpdDailyShift"]] = relationship(
        "OpdDailyShift", back_populates="ward", cascade="all, delete-orphan"
    )


# ── IPD ───────────────────────────────────────────────────────────────────────
class IpdDailyShift(Base):
    __tablename__ = "ipd_daily_shifts"
    __table_args__ = (
        UniqueConstraint("ward_id", "record_date", "shift", name="ipd_shift_unique"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ward_id: Mapped[int] = mapped_column(Integer, ForeignKey("nursing_wards.id"), nullable=False)
    record_date: Mapped[date] = mapped_column(Date, nullable=False)
    shift: Mapped[str] = mapped_column(String(10), nullable=False)  # morning | afternoon | night
    hn_count: Mapped[int] = mapped_column(Integer, default=0)
    rn_count: Mapped[int] = mapped_column(Integer, default=0)
    tn_count: Mapped[int] = mapped_column(Integer, default=0)
    na_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    ward: Mapped["NursingWard"] = relationship("NursingWard", back_populates="ipd_shifts")


class IpdDailySummary(Base):
    __tablename__ = "ipd_daily_summary"
    __table_args__ = (
        UniqueConstraint("ward_id", "record_date", name="ipd_summary_unique"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ward_id: Mapped[int] = mapped_column(Integer, ForeignKey("nursing_wards.id"), nullable=False)
    record_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_staff_day: Mapped[int] = mapped_column(Integer, default=0)
    patient_day: Mapped[int] = mapped_column(Integer, default=0)
    hppd: Mapped[Decimal] = mapped_column(Numeric(7, 2), default=0)
    discharge_count: Mapped[int] = mapped_column(Integer, default=0)
    new_admission: Mapped[int] = mapped_column(Integer, default=0)
    productivity: Mapped[Decimal] = mapped_column(Numeric(7, 2), default=0)
    cmi: Mapped[Decimal] = mapped_column(Numeric(7, 2), default=0)
    cap_status: Mapped[Optional[str]] = mapped_column(String(20), default="suitable")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    ward: Mapped["NursingWard"] = relationship("NursingWard", back_populates="ipd_summaries")


# ── OPD (ER / LR) ─────────────────────────────────────────────────────────────
class OpdDailyShift(Base):
    __tablename__ = "opd_daily_shifts"
    __table_args__ = (
        UniqueConstraint("ward_id", "record_date", "shift", name="opd_shift_unique"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ward_id: Mapped[int] = mapped_column(Integer, ForeignKey("nursing_wards.id"), nullable=False)
    record_date: Mapped[date] = mapped_column(Date, nullable=False)
    shift: Mapped[str] = mapped_column(String(10), nullable=False)
    rn_count: Mapped[int] = mapped_column(Integer, default=0)
    non_rn_count: Mapped[int] = mapped_column(Integer, default=0)
    patient_total: Mapped[int] = mapped_column(Integer, default=0)
    category_data: Mapped[Optional[dict]] = mapped_column(JSONType)
    # Materialized on every upsert; NULL = ward has no scoring schema
    workload_score: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    ward: Mapped["NursingWard"] = relationship("NursingWard", back_populates="opd_shifts")


# ── HIS DATA WAREHOUSE (read-only, loaded by the HIS ETL) ─────────────────────
class FactVisit(Base):
    __tablename__ = "fact_visits"
    visit_sk: Mapped[int] = mapped_column(Integer, primary_key=True)
    source_visit_id: Mapped[Optional[str]] = mapped_column(String(50))
    source_admission_id: Mapped[Optional[str]] = mapped_column(String(50))
    visit_date_key: Mapped[Optional[int]] = mapped_column(Integer)       # YYYYMMDD
    discharge_date_key: Mapped[Optional[int]] = mapped_column(Integer)   # YYYYMMDD
    patient_sk: Mapped[Optional[int]] = mapped_column(Integer)
    department_key: Mapped[Optional[int]] = mapped_column(Integer)
    ward_key: Mapped[Optional[int]] = mapped_column(Integer, index=True)
    visit_type: Mapped[Optional[str]] = mapped_column(String(20))
    length_of_stay: Mapped[Optional[Decimal]] = mapped_column(Numeric)
    is_admit: Mapped[int] = mapped_column(Integer, default=0)
    is_discharge: Mapped[int] = mapped_column(Integer, default=0)
    visit_count: Mapped[int] = mapped_column(Integer, default=1)
    is_cancelled: Mapped[int] = mapped_column(Integer, default=0)


class DimWard(Base):
    __tablename__ = "dim_ward"
    ward_key: Mapped[int] = mapped_column(Integer, primary_key=True)
    source_ward_id: Mapped[Optional[str]] = mapped_column(String(50))
    ward_name: Mapped[Optional[str]] = mapped_column(String(100))
    bed_count: Mapped[int] = mapped_column(Integer, default=0)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True)
