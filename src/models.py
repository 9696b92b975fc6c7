from sqlalchemy import Column, String, Text, DateTime, Index
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func


Base = declarative_base()

class KeyValueEntry(Base):
    __tablename__ = 'kv_entries'

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_kv_entries_updated_at', 'updated_at'),
    )
