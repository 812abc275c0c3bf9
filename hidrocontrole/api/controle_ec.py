from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from hidrocontrole.core.deps import get_db
from hidrocontrole.schemas.comando import ComandoOut
from hidrocontrole.schemas.config_ec import ConfigECIn, ConfigECOut, DosagemIn, DosagemOut
from hidrocontrole.services import controle_ec

router = APIRouter(prefix="/ec-controller", tags=["controle-ec"])


@router.get("/{device_id}/config", response_model=ConfigECOut)
def obter_config(device_id: str, db: Session = Depends(get_db)):
    return controle_ec.obter_config(db, device_id)


@router.post("/config", response_model=ConfigECOut)
def salvar_config(entrada: ConfigECIn, db: Session = Depends(get_db)):
    return controle_ec.salvar_config(db, entrada)


@router.post("/{device_id}/ativar", response_model=ConfigECOut)
def ativar_auto(device_id: str, db: Session = Depends(get_db)):
    return controle_ec.ativar_auto(db, device_id)


@router.post("/{device_id}/desativar", response_model=ConfigECOut)
def desativar_auto(device_id: str, db: Session = Depends(get_db)):
    return controle_ec.desativar_auto(db, device_id)


@router.get("/{device_id}/plano")
def calcular_plano(
    device_id: str,
    ec_medido: Optional[float] = Query(None),
    db: Session = Depends(get_db),
):
    """Só calcula; não cria comandos."""
    ec, plano = controle_ec.calcular_plano(db, device_id, ec_medido)
    return {"ec_medido": ec, "plano": plano.como_dict() if plano else None}


@router.post("/{device_id}/dosar", response_model=DosagemOut)
def dosar(device_id: str, body: DosagemIn, db: Session = Depends(get_db)):
    return controle_ec.dosar(db, device_id, ec_medido=body.ec_medido, forcar=body.forcar)


@router.post("/{device_id}/nutrientes/{relay_number}/acionar", response_model=ComandoOut, status_code=201)
def acionar_nutriente(device_id: str, relay_number: int, db: Session = Depends(get_db)):
    return controle_ec.acionar_nutriente(db, device_id, relay_number)
