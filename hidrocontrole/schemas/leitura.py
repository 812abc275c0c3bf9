from uuid import UUID
from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel

class LeituraIn(BaseModel):
    device_id: str
    dados: Dict[str, Any]

class LeituraOut(BaseModel):
    id: UUID
    device_id: str
    dados: Dict[str, Any]
    timestamp: datetime

    class Config:
        from_attributes = True
