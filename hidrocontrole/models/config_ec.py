from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime
from datetime import datetime
from hidrocontrole.db.base import Base, JSONPortavel

class ConfigEC(Base):
    __tablename__ = "ec_controller_config"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String, nullable=False, unique=True, index=True)

    base_dose = Column(Float, nullable=False, default=0.0)     # EC base em µS/cm
    flow_rate = Column(Float, nullable=False, default=0.0)     # vazão da bomba em ml/s
    volume = Column(Float, nullable=False, default=0.0)        # volume do reservatório em litros
    ec_setpoint = Column(Float, nullable=False, default=0.0)
    kp = Column(Float, nullable=False, default=1.0)
    auto_enabled = Column(Boolean, nullable=False, default=False)
    interval_between_checks_seconds = Column(Integer, nullable=False, default=300)
    recirculation_seconds = Column(Integer, nullable=False, default=60)

    nutrients = Column(JSONPortavel, nullable=False, default=list)   # [{"name","relay_number","ml_per_liter"}]

    ultima_dosagem_em = Column(DateTime, nullable=True)
    atualizado_em = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
