"""create staff, month_stats_entries and month_aggregates tables

Revision ID: 001_allocation_tables
Revises:
Create Date: 2025-03-01 09:00:00.000000

Types are database-agnostic and work on both SQLite and MSSQL:
- JSON columns (Warehouses, Meta, ExpectedCum, ...) are sa.Text() holding JSON
- sa.func.now() -> CURRENT_TIMESTAMP (SQLite) or GETDATE() (MSSQL)
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.engine.reflection import Inspector


# revision identifiers, used by Alembic.
revision = '001_allocation_tables'
down_revision = None
branch_labels = None
depends_on = None


def table_exists(table_name):
    """Check if a table exists."""
    bind = op.get_bind()
    inspector = Inspector.from_engine(bind)
    return table_name in inspector.get_table_names()


def upgrade() -> None:
    """
    Create the allocation tables. Existing tables are left untouched.

    Tables:
    - staff: roster, warehouse ownership and allocation order
    - month_stats_entries: append-only daily assigned counts
    - month_aggregates: settled month-to-date fairness state, one row per month
    """
    try:
        if not table_exists('staff'):
            print("✓ Creating staff table...")
            op.create_table(
                'staff',
                sa.Column('id', sa.Integer(), nullable=False, primary_key=True),
                sa.Column('Code', sa.String(50), nullable=False, unique=True),
                sa.Column('Name', sa.String(255), nullable=False),
                sa.Column('WeightPct', sa.Float(), nullable=False),
                sa.Column('Status', sa.String(10), nullable=False),
                sa.Column('Active', sa.Boolean(), nullable=False),
                sa.Column('Warehouses', sa.Text(), nullable=False),
                sa.Column('SortOrder', sa.Integer(), nullable=False),
                sa.Column('CreatedDateTime', sa.DateTime(), nullable=False, server_default=sa.func.now()),
                sa.Column('UpdatedDateTime', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            )
            op.create_index('idx_staff_active_order', 'staff', ['Active', 'SortOrder'])
            print("→ staff table created")
        else:
            print("→ staff table already exists, skipping...")

        if not table_exists('month_stats_entries'):
            print("✓ Creating month_stats_entries table...")
            op.create_table(
                'month_stats_entries',
                sa.Column('id', sa.Integer(), nullable=False, primary_key=True),
                sa.Column('MonthKey', sa.String(7), nullable=False),
                sa.Column('UserCode', sa.String(50), nullable=False),
                sa.Column('AssignedCount', sa.Integer(), nullable=False),
                sa.Column('AssignedValue', sa.Float(), nullable=False),
                sa.Column('Meta', sa.Text(), nullable=True),
                sa.Column('EntryDate', sa.String(10), nullable=False),
                sa.Column('CreatedDateTime', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            )
            op.create_index('idx_month_entries_month_user', 'month_stats_entries', ['MonthKey', 'UserCode'])
            print("→ month_stats_entries table created")
        else:
            print("→ month_stats_entries table already exists, skipping...")

        if not table_exists('month_aggregates'):
            print("✓ Creating month_aggregates table...")
            op.create_table(
                'month_aggregates',
                sa.Column('id', sa.Integer(), nullable=False, primary_key=True),
                sa.Column('MonthKey', sa.String(7), nullable=False),
                sa.Column('ExpectedCum', sa.Text(), nullable=False),
                sa.Column('ActualCum', sa.Text(), nullable=False),
                sa.Column('Deficit', sa.Text(), nullable=False),
                sa.Column('LastServedAt', sa.Text(), nullable=False),
                sa.Column('Version', sa.String(50), nullable=True),
                sa.Column('UpdatedDateTime', sa.DateTime(), nullable=False, server_default=sa.func.now()),
                sa.UniqueConstraint('MonthKey', name='uix_month_aggregate'),
            )
            print("→ month_aggregates table created")
        else:
            print("→ month_aggregates table already exists, skipping...")

        print("\n✅ Migration 001 completed successfully!")

    except Exception as e:
        print(f"\n❌ ERROR during migration: {e}")
        raise  # Re-raise to trigger Alembic's automatic rollback


def downgrade() -> None:
    """
    Drop the allocation tables.

    WARNING: This deletes the roster and all month statistics.
    """
    for table in ('month_aggregates', 'month_stats_entries', 'staff'):
        if table_exists(table):
            print(f"✓ Dropping {table} table...")
            op.drop_table(table)
        else:
            print(f"→ {table} table doesn't exist, skipping...")
