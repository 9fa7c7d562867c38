from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.sql import func
from listingsync.database import Base


class AppSetting(Base):
    """Key/value settings editable at runtime (e.g. the upstream API token)."""
    __tablename__ = "app_settings"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @classmethod
    def get_value(cls, db, key: str):
        row = db.query(cls).filter(cls.key == key).first()
        return row.value if row else None

    @classmethod
    def set_value(cls, db, key: str, value):
        row = db.query(cls).filter(cls.key == key).first()
        if row:
            row.value = value
        else:
            row = cls(key=key, value=value)
            db.add(row)
        db.commit()
        return row
