from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class ComandoIn(BaseModel):
    # Tipos propositalmente frouxos: faixas e valores são validados no serviço,
    # que responde com o campo inválido (400) em vez do 422 padrão.
    master_device_id: Optional[str] = None
    slave_mac_address: Optional[str] = None
    slave_name: Optional[str] = None
    relay_number: Any = None
    action: Any = None
    duration_seconds: Any = None
    triggered_by: str = "manual"
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None
    command_type: Optional[str] = None
    priority: Any = None


class ComandoOut(BaseModel):
    id: int
    device_id: str
    target_device_id: Optional[str] = None
    slave_mac_address: Optional[str] = None
    relay_number: int
    action: str
    duration_seconds: Optional[float] = None
    status: str
    command_type: str
    priority: int
    triggered_by: Optional[str] = None
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None
    error_message: Optional[str] = None
    criado_em: datetime

    class Config:
        from_attributes = True


class StatusComandoIn(BaseModel):
    status: str
    error_message: Optional[str] = None


class AckOut(BaseModel):
    command_id: int
    device_id: str
    target_device_id: Optional[str] = None
    relay_number: int
    action: str
    success: bool
    status: str
    error_message: Optional[str] = None
    atualizado_em: Optional[datetime] = None
