"""nursing_workforce_schema

Revision ID: 001_nursing_workforce
Revises:
Create Date: 2026-10-19

Creates the workforce tables:
- nursing_wards (with opd_fields_config / his_ward_keys JSONB)
- ipd_daily_shifts, ipd_daily_summary
- opd_daily_shifts (category_data JSONB, nullable workload_score)

The HIS warehouse tables (fact_visits, dim_ward) are owned by the HIS ETL and
are not created here.

All DDL checks for existing tables first so the migration is idempotent —
safe to run even when Base.metadata.create_all() already created the tables.
"""
import logging
from alembic import op
import sqlalchemy as sa
from sqlalchemy import text
from sqlalchemy.dialects.postgresql import JSONB

revision = '001_nursing_workforce'
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger("alembic.001")


def _table_exists(conn, table_name: str) -> bool:
    result = conn.execute(
        text(
            "SELECT EXISTS("
            "  SELECT 1 FROM information_schema.tables"
            "  WHERE table_name = :tname"
            ")"
        ),
        {"tname": table_name},
    )
    return bool(result.scalar())


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    conn = op.get_bind()

    # ── nursing_wards ─────────────────────────────────────────────────────────
    if not _table_exists(conn, 'nursing_wards'):
        op.create_table(
            'nursing_wards',
            sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
            sa.Column('code', sa.String(20), nullable=False, unique=True),
            sa.Column('name', sa.String(100), nullable=False),
            sa.Column('dept_type', sa.String(10), nullable=False),
            sa.Column('is_active', sa.Boolean, server_default=sa.true()),
            sa.Column('opd_fields_config', JSONB, nullable=True),
            sa.Column('his_ward_keys', JSONB, nullable=True),
            *_timestamps(),
        )
        logger.info("Created table: nursing_wards")
    else:
        logger.info("Table nursing_wards already exists — skipping create")

    # ── ipd_daily_shifts ──────────────────────────────────────────────────────
    if not _table_exists(conn, 'ipd_daily_shifts'):
        op.create_table(
            'ipd_daily_shifts',
            sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
            sa.Column('ward_id', sa.Integer, sa.ForeignKey('nursing_wards.id'), nullable=False),
            sa.Column('record_date', sa.Date, nullable=False),
            sa.Column('shift', sa.String(10), nullable=False),
            sa.Column('hn_count', sa.Integer, server_default='0'),
            sa.Column('rn_count', sa.Integer, server_default='0'),
            sa.Column('tn_count', sa.Integer, server_default='0'),
            sa.Column('na_count', sa.Integer, server_default='0'),
            *_timestamps(),
            sa.UniqueConstraint('ward_id', 'record_date', 'shift', name='ipd_shift_unique'),
        )
        logger.info("Created table: ipd_daily_shifts")
    else:
        logger.info("Table ipd_daily_shifts already exists — skipping create")

    # ── ipd_daily_summary ─────────────────────────────────────────────────────
    if not _table_exists(conn, 'ipd_daily_summary'):
        op.create_table(
            'ipd_daily_summary',
            sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
            sa.Column('ward_id', sa.Integer, sa.ForeignKey('nursing_wards.id'), nullable=False),
            sa.Column('record_date', sa.Date, nullable=False),
            sa.Column('total_staff_day', sa.Integer, server_default='0'),
            sa.Column('patient_day', sa.Integer, server_default='0'),
            sa.Column('hppd', sa.Numeric(7, 2), server_default='0'),
            sa.Column('discharge_count', sa.Integer, server_default='0'),
            sa.Column('new_admission', sa.Integer, server_default='0'),
            sa.Column('productivity', sa.Numeric(7, 2), server_default='0'),
            sa.Column('cmi', sa.Numeric(7, 2), server_default='0'),
            sa.Column('cap_status', sa.String(20), server_default='suitable'),
            *_timestamps(),
            sa.UniqueConstraint('ward_id', 'record_date', name='ipd_summary_unique'),
        )
        logger.info("Created table: ipd_daily_summary")
    else:
        logger.info("Table ipd_daily_summary already exists — skipping create")

    # ── opd_daily_shifts ──────────────────────────────────────────────────────
    if not _table_exists(conn, 'opd_daily_shifts'):
        op.create_table(
            'opd_daily_shifts',
            sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
            sa.Column('ward_id', sa.Integer, sa.ForeignKey('nursing_wards.id'), nullable=False),
            sa.Column('record_date', sa.Date, nullable=False),
            sa.Column('shift', sa.String(10), nullable=False),
            sa.Column('rn_count', sa.Integer, server_default='0'),
            sa.Column('non_rn_count', sa.Integer, server_default='0'),
            sa.Column('patient_total', sa.Integer, server_default='0'),
            sa.Column('category_data', JSONB, nullable=True),
            sa.Column('workload_score', sa.Numeric(10, 2), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint('ward_id', 'record_date', 'shift', name='opd_shift_unique'),
        )
        logger.info("Created table: opd_daily_shifts")
    else:
        logger.info("Table opd_daily_shifts already exists — skipping create")


def downgrade() -> None:
    for table in ('opd_daily_shifts', 'ipd_daily_summary', 'ipd_daily_shifts', 'nursing_wards'):
        op.execute(f"DROP TABLE IF EXISTS {table}")
