from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, UniqueConstraint

from storestats.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccessLog(Base):
    """Una visita a la página pública de un store."""

    __tablename__ = "access_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    store_id = Column(Integer, nullable=False, index=True)
    url = Column(Text, nullable=False)
    ip_hash = Column(String(64), nullable=False)
    user_agent = Column(Text, nullable=True, default="")
    referer = Column(Text, nullable=True, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)


class AccessStat(Base):
    """Agregado diario de accesos por store."""

    __tablename__ = "access_stats"
    __table_args__ = (UniqueConstraint("store_id", "date", name="uq_access_stats_store_date"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    store_id = Column(Integer, nullable=False, index=True)
    date = Column(String(10), nullable=False, index=True)  # YYYY-MM-DD
    total_visits = Column(Integer, nullable=False, default=0)
    unique_visitors = Column(Integer, nullable=False, default=0)
    hourly_stats = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "date": self.date,
            "total_visits": self.total_visits,
            "unique_visitors": self.unique_visitors,
            "hourly_stats": dict(self.hourly_stats or {}),
            "created_at": self.created_at.strftime("%Y-%m-%d %H:%M:%S") if self.created_at else None,
        }
