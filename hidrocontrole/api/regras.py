from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from hidrocontrole.core.deps import get_db
from hidrocontrole.schemas.comando import ComandoOut
from hidrocontrole.schemas.regra import RegraIn, RegraOut, RegraToggleIn
from hidrocontrole.services import regras
from hidrocontrole.services.validador_script import validar_instrucoes

router = APIRouter(prefix="/regras", tags=["regras"])


@router.post("/", response_model=RegraOut, status_code=201)
def criar_regra(entrada: RegraIn, db: Session = Depends(get_db)):
    return regras.salvar_regra(db, entrada)


@router.get("/", response_model=List[RegraOut])
def listar_regras(device_id: str, db: Session = Depends(get_db)):
    return regras.listar_regras(db, device_id)


@router.post("/validar-script")
def validar_script(instrucoes: List[dict]):
    """Valida uma árvore de instruções sem salvar nada (usado pelo editor)."""
    resultado = validar_instrucoes(instrucoes)
    return {
        "valido": resultado.valido,
        "erros": resultado.erros_dict(),
        "instructions": resultado.instrucoes,
    }


@router.get("/{regra_id}", response_model=RegraOut)
def obter_regra(regra_id: UUID, db: Session = Depends(get_db)):
    return regras.obter_regra(db, regra_id)


@router.put("/{regra_id}", response_model=RegraOut)
def atualizar_regra(regra_id: UUID, entrada: RegraIn, db: Session = Depends(get_db)):
    return regras.salvar_regra(db, entrada, regra_id=regra_id)


@router.patch("/{regra_id}/enabled", response_model=RegraOut)
def alternar_regra(regra_id: UUID, body: RegraToggleIn, db: Session = Depends(get_db)):
    return regras.alternar_regra(db, regra_id, body.enabled)


@router.post("/{regra_id}/executar", response_model=List[ComandoOut])
def executar_regra(regra_id: UUID, db: Session = Depends(get_db)):
    return regras.executar_regra(db, regra_id)


@router.delete("/{regra_id}", status_code=status.HTTP_204_NO_CONTENT)
def excluir_regra(regra_id: UUID, db: Session = Depends(get_db)):
    regras.excluir_regra(db, regra_id)
