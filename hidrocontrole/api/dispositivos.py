from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from hidrocontrole.core.deps import get_db
from hidrocontrole.schemas.dispositivo import (
    DispositivoIn,
    DispositivoOut,
    EstadoReleIn,
    EstadoReleOut,
    NomeReleIn,
    NomeReleOut,
    SlaveOut,
)
from hidrocontrole.services import dispositivos, reles

router = APIRouter(prefix="/dispositivos", tags=["dispositivos"])


@router.post("/", response_model=DispositivoOut)
def registrar_dispositivo(entrada: DispositivoIn, db: Session = Depends(get_db)):
    return dispositivos.registrar_dispositivo(db, entrada)


@router.get("/", response_model=List[DispositivoOut])
def listar_dispositivos(
    user_email: Optional[str] = Query(None, description="Filtra pela conta dona (opcional)"),
    db: Session = Depends(get_db),
):
    return dispositivos.listar_dispositivos(db, user_email)


@router.get("/{master_device_id}/slaves", response_model=List[SlaveOut])
def listar_slaves(master_device_id: str, db: Session = Depends(get_db)):
    return reles.descobrir_slaves(db, master_device_id)


@router.get("/{master_device_id}/reles", response_model=Dict[str, EstadoReleOut])
def estados_reles(master_device_id: str, db: Session = Depends(get_db)):
    return reles.estados_reles(db, master_device_id)


@router.post("/{master_device_id}/reles")
def reportar_estados(master_device_id: str, estados: List[EstadoReleIn], db: Session = Depends(get_db)):
    """Relatório de estados vindo do master (mesmo conteúdo do tópico MQTT `reles`)."""
    total = reles.registrar_estados(db, master_device_id, estados)
    return {"ok": True, "atualizados": total}


@router.get("/{master_device_id}/reles/nomes", response_model=Dict[str, str])
def listar_nomes(master_device_id: str, db: Session = Depends(get_db)):
    """Nomes dos relés por chave (`master-3`, `AA:BB:...-2`)."""
    return reles.nomes_reles(db, master_device_id)


@router.put("/{master_device_id}/reles/{relay_number}/nome", response_model=NomeReleOut)
def renomear_rele(master_device_id: str, relay_number: int, entrada: NomeReleIn, db: Session = Depends(get_db)):
    return reles.renomear_rele(db, master_device_id, relay_number, entrada.relay_name, entrada.slave_mac_address)
