"""Database models for the retained power-event log."""

from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class PowerEvent(Base):
    """One archived power-source/charge sample from the power-event log."""

    __tablename__ = "power_events"
    __table_args__ = (
        UniqueConstraint("timestamp", "source", "charge_percent", name="uq_power_event"),
    )

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime, index=True, nullable=False)  # local wall-clock time
    source = Column(String, nullable=False)  # Batt/AC
    charge_percent = Column(Integer, nullable=False)
