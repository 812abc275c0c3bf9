from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from hidrocontrole.core.deps import get_db
from hidrocontrole.schemas.leitura import LeituraIn, LeituraOut
from hidrocontrole.services import leituras

router = APIRouter(prefix="/leituras", tags=["leituras"])


@router.post("/", response_model=LeituraOut, status_code=201)
def registrar_leitura(entrada: LeituraIn, db: Session = Depends(get_db)):
    return leituras.registrar_leitura(db, entrada.device_id, entrada.dados)


@router.get("/ultima/{device_id}", response_model=LeituraOut)
def obter_ultima_leitura(device_id: str, db: Session = Depends(get_db)):
    ultimas = leituras.listar_leituras(db, device_id, limite=1)
    if not ultimas:
        raise HTTPException(status_code=404, detail="Nenhuma leitura encontrada para este dispositivo.")
    return ultimas[0]


@router.get("/", response_model=List[LeituraOut])
def listar_leituras(
    device_id: str,
    limite: int = Query(100, le=1000),
    db: Session = Depends(get_db),
):
    return leituras.listar_leituras(db, device_id, limite)
