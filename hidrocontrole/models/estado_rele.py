from sqlalchemy import Column, String, Integer, Boolean, DateTime, UniqueConstraint
from datetime import datetime
from hidrocontrole.db.base import Base

class EstadoRele(Base):
    """Estado autoritativo de um relé, reportado pelo master."""

    __tablename__ = "relay_states"
    __table_args__ = (
        UniqueConstraint("master_device_id", "alvo", "relay_number", name="uq_relay_states_alvo"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    master_device_id = Column(String, nullable=False, index=True)
    alvo = Column(String, nullable=False)                  # "master" ou MAC do slave
    relay_number = Column(Integer, nullable=False)

    state = Column(Boolean, nullable=False, default=False)
    has_timer = Column(Boolean, nullable=False, default=False)
    remaining_time = Column(Integer, nullable=False, default=0)
    relay_name = Column(String, nullable=True)

    atualizado_em = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
