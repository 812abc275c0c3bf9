import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Uuid
from datetime import datetime
from hidrocontrole.db.base import Base

class Dispositivo(Base):
    __tablename__ = "dispositivos"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    device_id = Column(String, nullable=False, unique=True, index=True)   # ex: "ESP32_HIDRO_A1B2C3"
    device_name = Column(String, nullable=True)
    device_type = Column(String, nullable=True)                          # ex: "ESP32_HYDROPONIC", "ESP32_SLAVE"

    mac_address = Column(String, nullable=True)                          # endereço de rádio (ESP-NOW)
    user_email = Column(String, nullable=True)                           # conta dona do dispositivo

    # Preenchido apenas para slaves: master pelo qual o slave é alcançado
    master_device_id = Column(String, nullable=True, index=True)

    is_online = Column(Boolean, default=False)
    last_seen = Column(DateTime, nullable=True)
    ativo = Column(Boolean, default=True)
    criado_em = Column(DateTime, default=datetime.utcnow)
