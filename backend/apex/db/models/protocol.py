"""Protocol reference data and the module -> protocol mapping.

Both tables are owned by the content pipeline; this service only reads them.
"""
from __future__ import annotations

from sqlalchemy import Boolean, Column, Index, Integer, String, Text, text as sa_text

from apex.db.base import Base


class Protocol(Base):
    __tablename__ = "protocols"

    id = Column(String(length=120), primary_key=True)
    name = Column(Text, nullable=False)
    # foundation | performance | recovery | optimization | meta
    category = Column(String(length=50), nullable=False)
    duration_minutes = Column(Integer, nullable=True)


class ModuleProtocolMap(Base):
    __tablename__ = "module_protocol_map"
    __table_args__ = (Index("ix_module_protocol_map_module_id", "module_id"),)

    module_id = Column(String(length=120), primary_key=True)
    protocol_id = Column(String(length=120), primary_key=True)
    is_starter_protocol = Column(Boolean, nullable=False, server_default=sa_text("false"))
