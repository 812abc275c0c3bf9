from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class DispositivoIn(BaseModel):
    device_id: str
    device_name: Optional[str] = None
    device_type: Optional[str] = None
    mac_address: Optional[str] = None
    user_email: Optional[str] = None
    master_device_id: Optional[str] = None
    is_online: bool = False


class DispositivoOut(DispositivoIn):
    id: UUID
    last_seen: Optional[datetime] = None
    criado_em: datetime

    class Config:
        from_attributes = True


class EstadoReleIn(BaseModel):
    slave_mac_address: Optional[str] = None
    relay_number: int
    state: bool
    has_timer: bool = False
    remaining_time: int = 0
    relay_name: Optional[str] = None


class EstadoReleOut(BaseModel):
    chave: str
    relay_number: int
    state: bool
    has_timer: bool
    remaining_time: int
    relay_name: Optional[str] = None


class NomeReleIn(BaseModel):
    relay_name: str
    slave_mac_address: Optional[str] = None


class NomeReleOut(NomeReleIn):
    chave: str
    master_device_id: str
    relay_number: int


class SlaveOut(BaseModel):
    device_id: str
    mac_address: str
    name: str
    status: str
    last_seen: Optional[datetime] = None
    relays: List[EstadoReleOut]
