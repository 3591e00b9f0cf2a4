"""
Runtime-editable key/value settings
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text

from app.recon.database import Base


class SystemSettingModel(Base):
    __tablename__ = "system_settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
