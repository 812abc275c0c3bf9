import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hidrocontrole.core.erros import ErroPersistencia
from hidrocontrole.models.leitura import Leitura

logger = logging.getLogger(__name__)

# Quantas leituras recentes olhar atrás de um "ec" numérico
JANELA_BUSCA_EC = 20


def registrar_leitura(db: Session, device_id: str, dados: Dict[str, Any]) -> Leitura:
    """Salva um snapshot de sensores (JSON completo no momento da leitura)."""
    leitura = Leitura(device_id=device_id, dados=dados)
    try:
        db.add(leitura)
        db.commit()
        db.refresh(leitura)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Erro ao salvar leitura de {device_id}: {dados}")
        raise ErroPersistencia("Erro ao salvar leitura", detalhes=str(e))
    return leitura


def listar_leituras(db: Session, device_id: str, limite: int = 100) -> List[Leitura]:
    return (
        db.query(Leitura)
        .filter(Leitura.device_id == device_id)
        .order_by(Leitura.timestamp.desc())
        .limit(limite)
        .all()
    )


def ultimo_ec(db: Session, device_id: str) -> Optional[float]:
    """
    EC mais recente do dispositivo. Nem todo snapshot traz "ec"
    (ex: só nível de água), então procura nas últimas leituras.
    """
    for leitura in listar_leituras(db, device_id, JANELA_BUSCA_EC):
        valor = (leitura.dados or {}).get("ec")
        if isinstance(valor, (int, float)) and not isinstance(valor, bool):
            return float(valor)
    return None
