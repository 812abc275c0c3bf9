import uuid
from sqlalchemy import Column, String, DateTime, Uuid
from datetime import datetime
from hidrocontrole.db.base import Base, JSONPortavel

class Leitura(Base):
    __tablename__ = "leituras"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)

    device_id = Column(String, nullable=False, index=True)
    dados = Column(JSONPortavel, nullable=False)     # ex: {"ec":1650.0,"ph":6.1,"temperature":22.4,"water_level":"medio"}
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)
