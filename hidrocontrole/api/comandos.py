from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from hidrocontrole.core.deps import get_db
from hidrocontrole.schemas.comando import AckOut, ComandoIn, ComandoOut, StatusComandoIn
from hidrocontrole.services import comandos

router = APIRouter(prefix="/esp-now", tags=["comandos"])


@router.post("/command", status_code=201)
def criar_comando(pedido: ComandoIn, db: Session = Depends(get_db)):
    """
    Cria um comando de relé para o master (relé local) ou para um slave
    (via ESP-NOW). O comando nasce 'pending'; quem muda o status é o executor.
    """
    comando = comandos.emitir_comando(db, pedido)
    return comandos.resposta_emissao(comando)


@router.get("/command-acks", response_model=List[AckOut])
def listar_acks(
    master_device_id: str,
    command_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return comandos.listar_acks(db, master_device_id, command_id=command_id, limit=limit)


# ---- Feed do executor (firmware do master) ----

@router.get("/comandos-pendentes", response_model=List[ComandoOut])
def listar_pendentes(
    master_device_id: str,
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return comandos.listar_pendentes(db, master_device_id, limit)


@router.patch("/comandos/{command_id}/status", response_model=ComandoOut)
def atualizar_status(
    command_id: int,
    body: StatusComandoIn,
    master_device_id: Optional[str] = Query(None, description="Rejeita comandos de outro master"),
    db: Session = Depends(get_db),
):
    return comandos.atualizar_status(db, command_id, body.status, body.error_message, master_device_id)
