import uuid
from sqlalchemy import Column, String, Integer, Boolean, DateTime, UniqueConstraint, Uuid
from datetime import datetime
from hidrocontrole.db.base import Base, JSONPortavel

class Regra(Base):
    __tablename__ = "regras"
    __table_args__ = (UniqueConstraint("device_id", "rule_id", name="uq_regras_device_rule"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    device_id = Column(String, nullable=False, index=True)
    rule_id = Column(String, nullable=False)          # identificador estável, ex: "RULE_3f9a0c2b71de"
    rule_name = Column(String, nullable=False)
    rule_description = Column(String, nullable=True)

    # {"script": {...}} OU {"conditions": [...], "actions": [...]}
    rule_json = Column(JSONPortavel, nullable=False)

    enabled = Column(Boolean, default=True, nullable=False)
    priority = Column(Integer, default=50, nullable=False)
    created_by = Column(String, nullable=True)

    criado_em = Column(DateTime, default=datetime.utcnow)
    atualizado_em = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
