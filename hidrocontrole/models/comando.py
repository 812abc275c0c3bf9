from sqlalchemy import Column, String, Integer, Float, DateTime
from datetime import datetime
from hidrocontrole.db.base import Base

class ComandoRele(Base):
    __tablename__ = "relay_commands"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)

    device_id = Column(String, nullable=False, index=True)      # sempre o master
    target_device_id = Column(String, nullable=True)            # nome/ID do slave, None = relé local
    slave_mac_address = Column(String, nullable=True)
    slave_device_id = Column(String, nullable=True)
    master_mac_address = Column(String, nullable=False)
    user_email = Column(String, nullable=False)

    relay_number = Column(Integer, nullable=False)
    action = Column(String, nullable=False)                     # "on" | "off"
    duration_seconds = Column(Float, nullable=True)             # None/0 = mantém até o próximo comando

    # pending -> sent -> completed | failed (transições feitas pelo executor)
    status = Column(String, nullable=False, default="pending", index=True)
    command_type = Column(String, nullable=False, default="manual")   # manual | rule | peristaltic
    priority = Column(Integer, nullable=False, default=10)
    triggered_by = Column(String, nullable=True)
    rule_id = Column(String, nullable=True)
    rule_name = Column(String, nullable=True)
    created_by = Column(String, nullable=True)
    error_message = Column(String, nullable=True)

    criado_em = Column(DateTime, default=datetime.utcnow)
    atualizado_em = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
