from sqlalchemy import Column, String, Integer, DateTime, UniqueConstraint
from datetime import datetime
from hidrocontrole.db.base import Base

class NomeRele(Base):
    """Nome dado pelo operador a um relé do master ou de um slave."""

    __tablename__ = "relay_names"
    __table_args__ = (
        UniqueConstraint("master_device_id", "alvo", "relay_number", name="uq_relay_names_alvo"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    master_device_id = Column(String, nullable=False, index=True)
    alvo = Column(String, nullable=False)                  # "master" ou MAC do slave
    relay_number = Column(Integer, nullable=False)
    relay_name = Column(String, nullable=False)

    atualizado_em = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
