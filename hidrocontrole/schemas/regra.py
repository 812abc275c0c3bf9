from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel


class EventoEncadeado(BaseModel):
    target_rule_id: str
    trigger_on: Literal["success", "failure"] = "success"
    delay_ms: int = 0


class ScriptIn(BaseModel):
    instructions: List[Dict[str, Any]] = []
    max_iterations: int = 0
    loop_interval_ms: int = 5000
    cooldown_seconds: int = 60
    max_executions_per_hour: int = 10
    chained_events: List[EventoEncadeado] = []


class RegraIn(BaseModel):
    device_id: str
    rule_id: Optional[str] = None
    rule_name: str = ""
    rule_description: Optional[str] = None
    enabled: bool = True
    priority: int = 50
    created_by: Optional[str] = None

    # Formato composto (conditions/actions) OU script; o serviço escolhe
    conditions: List[Dict[str, Any]] = []
    actions: List[Dict[str, Any]] = []
    script: Optional[ScriptIn] = None


class RegraToggleIn(BaseModel):
    enabled: bool


class RegraOut(BaseModel):
    id: UUID
    device_id: str
    rule_id: str
    rule_name: str
    rule_description: Optional[str] = None
    rule_json: Dict[str, Any]
    enabled: bool
    priority: int
    created_by: Optional[str] = None
    criado_em: datetime
    atualizado_em: Optional[datetime] = None

    class Config:
        from_attributes = True
