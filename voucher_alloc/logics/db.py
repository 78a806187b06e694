from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Column,
    DateTime,
    String,
    func,
    Index,
    UniqueConstraint,
    and_,
)
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel, create_engine, Field
from datetime import datetime
import pandas as pd
from sqlalchemy.exc import SQLAlchemyError

import logging
from voucher_alloc.logics.types import JSONEncoded

logger = logging.getLogger(__name__)


class StaffModel(SQLModel, table=True):
    """Staff roster. One row per staff code; Order drives allocation priority."""
    __tablename__ = "staff"

    id: int | None = Field(default=None, primary_key=True)
    Code: str = Field(sa_column=Column(String(50), nullable=False, unique=True))
    Name: str = Field(sa_column=Column(String(255), nullable=False, default=''))
    WeightPct: float = Field(default=100.0, nullable=False)
    Status: str = Field(sa_column=Column(String(10), nullable=False, default='online'))
    Active: bool = Field(default=True, nullable=False)
    Warehouses: List[str] = Field(
        default_factory=list,
        sa_column=Column(JSONEncoded, nullable=False)
    )
    SortOrder: int = Field(default=0, nullable=False)
    CreatedDateTime: datetime = Field(
        sa_column=Column(DateTime, nullable=False, server_default=func.now())
    )
    UpdatedDateTime: datetime = Field(
        sa_column=Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
    )

    __table_args__ = (
        Index('idx_staff_active_order', 'Active', 'SortOrder'),
    )


class MonthStatsEntryModel(SQLModel, table=True):
    """Per-day log line: how many rows a staff member received."""
    __tablename__ = "month_stats_entries"

    id: int | None = Field(default=None, primary_key=True)
    MonthKey: str = Field(sa_column=Column(String(7), nullable=False))
    UserCode: str = Field(sa_column=Column(String(50), nullable=False))
    AssignedCount: int = Field(default=0, nullable=False)
    AssignedValue: float = Field(default=0.0, nullable=False)
    Meta: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSONEncoded, nullable=True))
    EntryDate: str = Field(sa_column=Column(String(10), nullable=False))
    CreatedDateTime: datetime = Field(
        sa_column=Column(DateTime, nullable=False, server_default=func.now())
    )

    __table_args__ = (
        Index('idx_month_entries_month_user', 'MonthKey', 'UserCode'),
    )


class MonthAggregateModel(SQLModel, table=True):
    """
    Month-to-date fairness aggregate. Only the latest state per MonthKey is kept.
    """
    __tablename__ = "month_aggregates"

    id: int | None = Field(default=None, primary_key=True)
    MonthKey: str = Field(sa_column=Column(String(7), nullable=False))
    ExpectedCum: Dict[str, float] = Field(default_factory=dict, sa_column=Column(JSONEncoded, nullable=False))
    ActualCum: Dict[str, float] = Field(default_factory=dict, sa_column=Column(JSONEncoded, nullable=False))
    Deficit: Dict[str, float] = Field(default_factory=dict, sa_column=Column(JSONEncoded, nullable=False))
    LastServedAt: Dict[str, str] = Field(default_factory=dict, sa_column=Column(JSONEncoded, nullable=False))
    Version: Optional[str] = Field(default=None, sa_column=Column(String(50), nullable=True))
    UpdatedDateTime: datetime = Field(
        sa_column=Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
    )

    # UniqueConstraint ensures only one aggregate per month
    __table_args__ = (
        UniqueConstraint('MonthKey', name='uix_month_aggregate'),
    )


def staff_row_to_dict(row: StaffModel) -> Dict[str, Any]:
    return {
        'code': row.Code,
        'name': row.Name,
        'weightPct': float(row.WeightPct or 0),
        'online': (row.Status or 'online') == 'online',
        'warehouses': list(row.Warehouses or []),
        'order': int(row.SortOrder or 0),
        'active': bool(row.Active),
    }


class DBManager:
    def __init__(self, database_url: str, Model):
        """
        Initialize the DBManager with a database URL.

        Args:
            database_url (str): The database connection string.
            Model: SQLModel table class this manager reads and writes.
        """
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_engine(database_url, connect_args=connect_args)
        SQLModel.metadata.create_all(bind=self.engine)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self.Model = Model

    def save_to_db(self, df: pd.DataFrame):
        """
        Append DataFrame rows to the table using SQLAlchemy ORM.
        Rolls back on failure and logs exception.
        """
        session = self.SessionLocal()

        try:
            records = df.to_dict(orient="records")
            instances = [self.Model(**row) for row in records]
            session.add_all(instances)
            session.commit()
            logger.info(f"[DBManager] Inserted {len(instances)} new records.")

        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[DBManager] Error during save_to_db. Rolled back. Error: {e}")
            raise

        finally:
            session.close()
            logger.debug("[DBManager] Session closed.")

    def get_month_entries_df(self, month_key: str) -> pd.DataFrame:
        """All month_stats_entries rows for a month as a DataFrame."""
        with self.SessionLocal() as session:
            rows = session.query(MonthStatsEntryModel).filter(
                MonthStatsEntryModel.MonthKey == month_key
            ).order_by(MonthStatsEntryModel.id).all()
            return pd.DataFrame([
                {
                    'id': row.id,
                    'userCode': row.UserCode,
                    'assignedCount': row.AssignedCount,
                    'assignedValue': row.AssignedValue,
                    'meta': row.Meta,
                    'date': row.EntryDate,
                }
                for row in rows
            ], columns=['id', 'userCode', 'assignedCount', 'assignedValue', 'meta', 'date'])

    # ------------------------------------------------------------------
    # Staff
    # ------------------------------------------------------------------

    def upsert_staff_records(self, records: List[Dict[str, Any]]) -> int:
        """
        Insert or merge staff rows keyed by code.

        Only keys present in each record are written on update, so a partial
        record never wipes the stored order or warehouses.
        """
        session = self.SessionLocal()
        try:
            written = 0
            for record in records:
                code = str(record.get('code') or '').strip()
                if not code:
                    continue
                row = session.query(StaffModel).filter(StaffModel.Code == code).first()
                if row is None:
                    row = StaffModel(Code=code, Name='', Warehouses=[], Status='online')
                    session.add(row)
                if 'name' in record:
                    row.Name = record['name'] or ''
                if 'weightPct' in record:
                    row.WeightPct = record['weightPct']
                if 'online' in record:
                    row.Status = 'online' if record['online'] else 'offline'
                if 'warehouses' in record:
                    row.Warehouses = list(record['warehouses'] or [])
                if 'order' in record:
                    row.SortOrder = int(record['order'])
                row.Active = bool(record.get('active', True))
                written += 1
            session.commit()
            logger.info(f"[DBManager] Upserted {written} staff records.")
            return written
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[DBManager] Error upserting staff. Rolled back. Error: {e}")
            raise
        finally:
            session.close()

    def list_staff_records(self, active_only: bool = True) -> List[Dict[str, Any]]:
        with self.SessionLocal() as session:
            query = session.query(StaffModel)
            if active_only:
                query = query.filter(StaffModel.Active == True)  # noqa: E712
            rows = query.order_by(StaffModel.SortOrder, StaffModel.id).all()
            return [staff_row_to_dict(row) for row in rows]

    def update_staff_fields(self, code: str, fields: Dict[str, Any]) -> bool:
        """Update columns on one staff row. Returns False when the code is unknown."""
        session = self.SessionLocal()
        try:
            row = session.query(StaffModel).filter(StaffModel.Code == code).first()
            if row is None:
                return False
            for column, value in fields.items():
                setattr(row, column, value)
            row.UpdatedDateTime = datetime.now()
            session.commit()
            logger.info(f"[DBManager] Updated staff {code}: {sorted(fields)}")
            return True
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[DBManager] Error updating staff {code}. Rolled back. Error: {e}")
            raise
        finally:
            session.close()

    def delete_staff_record(self, code: str) -> bool:
        session = self.SessionLocal()
        try:
            deleted = session.query(StaffModel).filter(StaffModel.Code == code).delete(
                synchronize_session=False
            )
            session.commit()
            logger.info(f"[DBManager] Deleted {deleted} staff record(s) for {code}")
            return deleted > 0
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[DBManager] Error deleting staff {code}. Rolled back. Error: {e}")
            raise
        finally:
            session.close()

    def save_staff_ordering(self, codes_in_order: List[str]) -> List[str]:
        """
        Persist list position as SortOrder.

        Returns:
            Codes that were not found and therefore skipped
        """
        session = self.SessionLocal()
        try:
            rows = {
                row.Code: row
                for row in session.query(StaffModel).filter(StaffModel.Code.in_(codes_in_order)).all()
            }
            missing = []
            now = datetime.now()
            for idx, code in enumerate(codes_in_order):
                row = rows.get(code)
                if row is None:
                    missing.append(code)
                    continue
                row.SortOrder = idx
                row.UpdatedDateTime = now
            session.commit()
            if missing:
                logger.warning(f"[DBManager] Ordering skipped unknown staff codes: {missing}")
            logger.info(f"[DBManager] Saved ordering for {len(codes_in_order) - len(missing)} staff")
            return missing
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[DBManager] Error saving staff ordering. Rolled back. Error: {e}")
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Month aggregate
    # ------------------------------------------------------------------

    def get_month_aggregate(self, month_key: str) -> Optional[Dict[str, Any]]:
        """Latest aggregate for a month, None if the month has never been settled."""
        with self.SessionLocal() as session:
            row = session.query(MonthAggregateModel).filter(
                MonthAggregateModel.MonthKey == month_key
            ).first()
            if row is None:
                logger.info(f"[DBManager] No month aggregate found for {month_key}")
                return None
            return {
                'monthKey': row.MonthKey,
                'expectedCum': dict(row.ExpectedCum or {}),
                'actualCum': dict(row.ActualCum or {}),
                'deficit': dict(row.Deficit or {}),
                'lastServedAt': dict(row.LastServedAt or {}),
                'version': row.Version,
            }

    def save_month_aggregate(self, month_key: str, payload: Dict[str, Any]) -> None:
        """
        Save the aggregate using UPSERT logic keyed by MonthKey (last write wins).
        """
        session = self.SessionLocal()
        Model = MonthAggregateModel

        try:
            existing = session.query(Model).filter(
                and_(Model.MonthKey == month_key)
            ).first()

            if existing:
                existing.ExpectedCum = dict(payload.get('expectedCum') or {})
                existing.ActualCum = dict(payload.get('actualCum') or {})
                existing.Deficit = dict(payload.get('deficit') or {})
                existing.LastServedAt = dict(payload.get('lastServedAt') or {})
                existing.Version = payload.get('version')
                existing.UpdatedDateTime = datetime.now()
                logger.info(f"[DBManager] Updated month aggregate for {month_key}")
            else:
                session.add(Model(
                    MonthKey=month_key,
                    ExpectedCum=dict(payload.get('expectedCum') or {}),
                    ActualCum=dict(payload.get('actualCum') or {}),
                    Deficit=dict(payload.get('deficit') or {}),
                    LastServedAt=dict(payload.get('lastServedAt') or {}),
                    Version=payload.get('version'),
                ))
                logger.info(f"[DBManager] Inserted month aggregate for {month_key}")

            session.commit()

        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[DBManager] Error saving month aggregate: {e}")
            raise
        finally:
            session.close()
