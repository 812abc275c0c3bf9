from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class NutrienteConfig(BaseModel):
    name: str
    relay_number: int
    ml_per_liter: float = 0.0


class ConfigECIn(BaseModel):
    device_id: str
    base_dose: float = 0.0
    flow_rate: float = 0.0
    volume: float = 0.0
    ec_setpoint: float = 0.0
    auto_enabled: bool = False
    interval_between_checks_seconds: int = 300
    recirculation_seconds: int = 60
    nutrients: List[NutrienteConfig] = []


class ConfigECOut(ConfigECIn):
    kp: float = 1.0
    ultima_dosagem_em: Optional[datetime] = None
    atualizado_em: Optional[datetime] = None

    class Config:
        from_attributes = True


class DosagemIn(BaseModel):
    ec_medido: Optional[float] = None
    forcar: bool = False


class DoseOut(BaseModel):
    name: str
    relay_number: int
    dose_ml: float
    duration_seconds: float


class PlanoOut(BaseModel):
    total_ml_per_liter: float
    k: float
    erro: float
    volume_total_ml: float
    doses: List[DoseOut]


class DosagemOut(BaseModel):
    executada: bool
    motivo: Optional[str] = None
    plano: Optional[PlanoOut] = None
    command_ids: List[int] = []
