"""
Modelo tipado das instruções de script.

A árvore é uma união discriminada pelo campo `type`; dentro de
`relay_action` há uma segunda discriminação por `target`, de modo que um
relé de slave sempre carrega o MAC e um relé do master nunca carrega.
O formato JSON persistido é o mesmo que o firmware lê.
"""
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class Condicao(BaseModel):
    sensor: str
    operator: Literal["<", ">", "<=", ">=", "==", "!="]
    value: Union[float, str]


class InstrucaoWhile(BaseModel):
    type: Literal["while"] = "while"
    condition: Condicao
    body: List["Instrucao"] = []
    delay_ms: int = 1000
    max_iterations: Optional[int] = None


class InstrucaoIf(BaseModel):
    type: Literal["if"] = "if"
    condition: Condicao
    then: List["Instrucao"] = []
    senao: Optional[List["Instrucao"]] = Field(default=None, alias="else")

    class Config:
        populate_by_name = True


class AcaoReleMaster(BaseModel):
    type: Literal["relay_action"] = "relay_action"
    target: Literal["master"] = "master"
    relay_number: int = Field(ge=0, le=15)
    action: Literal["on", "off"]
    duration_seconds: Optional[float] = None


class AcaoReleSlave(BaseModel):
    type: Literal["relay_action"] = "relay_action"
    target: Literal["slave"] = "slave"
    slave_mac: str
    relay_number: int = Field(ge=0, le=7)
    action: Literal["on", "off"]
    duration_seconds: Optional[float] = None


AcaoRele = Annotated[Union[AcaoReleMaster, AcaoReleSlave], Field(discriminator="target")]


class InstrucaoSwitch(BaseModel):
    type: Literal["switch"] = "switch"
    switch_mode: Literal["timer", "cycle"] = "timer"
    duration_ms: Optional[int] = None
    cycle_on_ms: Optional[int] = None
    cycle_off_ms: Optional[int] = None
    cycle_count: Optional[int] = None   # 0 = indefinido, até o script terminar
    target: Optional[Literal["master", "slave"]] = None
    slave_mac: Optional[str] = None
    relay_number: Optional[int] = None


class InstrucaoReturn(BaseModel):
    type: Literal["return"] = "return"


Instrucao = Annotated[
    Union[InstrucaoWhile, InstrucaoIf, AcaoRele, InstrucaoSwitch, InstrucaoReturn],
    Field(discriminator="type"),
]

InstrucaoWhile.model_rebuild()
InstrucaoIf.model_rebuild()


def instrucoes_para_json(instrucoes: List[BaseModel]) -> List[dict]:
    return [i.model_dump(by_alias=True, exclude_none=True) for i in instrucoes]
