import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hidrocontrole.core.erros import ErroPersistencia, ErroValidacao
from hidrocontrole.models.dispositivo import Dispositivo
from hidrocontrole.schemas.dispositivo import DispositivoIn

logger = logging.getLogger(__name__)


def registrar_dispositivo(db: Session, entrada: DispositivoIn) -> Dispositivo:
    """Upsert por device_id; campos ausentes na entrada não apagam os já registrados."""
    if not entrada.device_id or not entrada.device_id.strip():
        raise ErroValidacao("device_id é obrigatório", campo="device_id")

    dispositivo = db.query(Dispositivo).filter(Dispositivo.device_id == entrada.device_id).first()
    novo = dispositivo is None
    if novo:
        dispositivo = Dispositivo(device_id=entrada.device_id, ativo=True)

    for campo in ("device_name", "device_type", "mac_address", "user_email", "master_device_id"):
        valor = getattr(entrada, campo)
        if valor is not None:
            setattr(dispositivo, campo, valor)
    dispositivo.is_online = entrada.is_online
    if entrada.is_online:
        dispositivo.last_seen = datetime.utcnow()

    try:
        db.add(dispositivo)
        db.commit()
        db.refresh(dispositivo)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Erro ao registrar dispositivo {entrada.device_id}")
        raise ErroPersistencia("Erro ao registrar dispositivo", detalhes=str(e))

    logger.info(f"Dispositivo {dispositivo.device_id} {'registrado' if novo else 'atualizado'}")
    return dispositivo


def listar_dispositivos(db: Session, user_email: Optional[str] = None) -> List[Dispositivo]:
    q = db.query(Dispositivo).filter(Dispositivo.ativo == True)
    if user_email:
        q = q.filter(Dispositivo.user_email == user_email)
    return q.order_by(Dispositivo.device_id).all()
