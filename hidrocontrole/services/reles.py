import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hidrocontrole.core.erros import ErroPersistencia, ErroValidacao
from hidrocontrole.models.dispositivo import Dispositivo
from hidrocontrole.models.estado_rele import EstadoRele
from hidrocontrole.models.nome_rele import NomeRele
from hidrocontrole.schemas.dispositivo import EstadoReleIn

logger = logging.getLogger(__name__)

ALVO_MASTER = "master"
RELES_POR_MASTER = 16
RELES_POR_SLAVE = 8


def chave_rele(slave_mac: Optional[str], relay_number: int) -> str:
    """Chave composta `{alvo}-{relay_number}`; alvo é "master" ou o MAC do slave."""
    return f"{slave_mac or ALVO_MASTER}-{relay_number}"


def _chave_alvo(alvo: str, relay_number: int) -> str:
    return chave_rele(None if alvo == ALVO_MASTER else alvo, relay_number)


def _estado_dict(linha: EstadoRele, nomes: Optional[Dict[str, str]] = None) -> dict:
    chave = _chave_alvo(linha.alvo, linha.relay_number)
    return {
        "chave": chave,
        "relay_number": linha.relay_number,
        "state": bool(linha.state),
        "has_timer": bool(linha.has_timer),
        "remaining_time": linha.remaining_time or 0,
        "relay_name": (nomes or {}).get(chave) or linha.relay_name,
    }


def registrar_estados(db: Session, master_device_id: str, estados: List[EstadoReleIn]) -> int:
    """
    Upsert dos estados reportados pelo master (um registro por relé).
    Relés ausentes no relatório ficam como estavam.
    """
    try:
        for estado in estados:
            alvo = estado.slave_mac_address or ALVO_MASTER
            linha = (
                db.query(EstadoRele)
                .filter(
                    EstadoRele.master_device_id == master_device_id,
                    EstadoRele.alvo == alvo,
                    EstadoRele.relay_number == estado.relay_number,
                )
                .first()
            )
            if linha is None:
                linha = EstadoRele(
                    master_device_id=master_device_id,
                    alvo=alvo,
                    relay_number=estado.relay_number,
                )
                db.add(linha)

            linha.state = estado.state
            linha.has_timer = estado.has_timer
            linha.remaining_time = estado.remaining_time
            if estado.relay_name is not None:
                linha.relay_name = estado.relay_name

        dispositivo = db.query(Dispositivo).filter(Dispositivo.device_id == master_device_id).first()
        if dispositivo:
            dispositivo.is_online = True
            dispositivo.last_seen = datetime.utcnow()

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Falha ao registrar estados de relé do master {master_device_id}")
        raise ErroPersistencia("Erro ao registrar estados dos relés", detalhes=str(e))
    return len(estados)


def estados_reles(db: Session, master_device_id: str) -> Dict[str, dict]:
    """Estado por chave de relé (master e slaves) a partir do store."""
    linhas = db.query(EstadoRele).filter(EstadoRele.master_device_id == master_device_id).all()
    nomes = nomes_reles(db, master_device_id)
    return {item["chave"]: item for item in (_estado_dict(linha, nomes) for linha in linhas)}


def descobrir_slaves(db: Session, master_device_id: str) -> List[dict]:
    """
    Slaves alcançáveis pelo master, com a lista de relés de cada um.
    Slave sem estado reportado aparece com 8 relés desligados.
    """
    slaves = (
        db.query(Dispositivo)
        .filter(
            Dispositivo.master_device_id == master_device_id,
            Dispositivo.ativo == True,
            Dispositivo.mac_address.isnot(None),
        )
        .order_by(Dispositivo.device_name)
        .all()
    )

    nomes = nomes_reles(db, master_device_id)
    resultado = []
    for slave in slaves:
        linhas = (
            db.query(EstadoRele)
            .filter(
                EstadoRele.master_device_id == master_device_id,
                EstadoRele.alvo == slave.mac_address,
            )
            .order_by(EstadoRele.relay_number)
            .all()
        )
        por_numero = {linha.relay_number: _estado_dict(linha, nomes) for linha in linhas}
        for numero in range(RELES_POR_SLAVE):
            chave = chave_rele(slave.mac_address, numero)
            por_numero.setdefault(numero, {
                "chave": chave,
                "relay_number": numero,
                "state": False,
                "has_timer": False,
                "remaining_time": 0,
                "relay_name": nomes.get(chave),
            })

        resultado.append({
            "device_id": slave.device_id,
            "mac_address": slave.mac_address,
            "name": slave.device_name or slave.device_id,
            "status": "online" if slave.is_online else "offline",
            "last_seen": slave.last_seen,
            "relays": [por_numero[n] for n in sorted(por_numero)],
        })
    return resultado


def nomes_reles(db: Session, master_device_id: str) -> Dict[str, str]:
    """Nomes dados pelo operador, por chave de relé."""
    linhas = db.query(NomeRele).filter(NomeRele.master_device_id == master_device_id).all()
    return {_chave_alvo(linha.alvo, linha.relay_number): linha.relay_name for linha in linhas}


def renomear_rele(
    db: Session,
    master_device_id: str,
    relay_number: int,
    relay_name: str,
    slave_mac_address: Optional[str] = None,
) -> dict:
    """
    Upsert do nome de um relé. O nome do operador tem precedência sobre
    o que o firmware reporta junto com os estados.
    """
    limite = RELES_POR_SLAVE if slave_mac_address else RELES_POR_MASTER
    if not 0 <= relay_number < limite:
        raise ErroValidacao(f"relay_number inválido (0-{limite - 1})", campo="relay_number")
    nome = (relay_name or "").strip()
    if not nome:
        raise ErroValidacao("relay_name é obrigatório", campo="relay_name")

    alvo = slave_mac_address or ALVO_MASTER
    linha = (
        db.query(NomeRele)
        .filter(
            NomeRele.master_device_id == master_device_id,
            NomeRele.alvo == alvo,
            NomeRele.relay_number == relay_number,
        )
        .first()
    )
    if linha is None:
        linha = NomeRele(master_device_id=master_device_id, alvo=alvo, relay_number=relay_number)
        db.add(linha)
    linha.relay_name = nome

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Erro ao salvar nome do relé {relay_number} ({alvo}) do master {master_device_id}")
        raise ErroPersistencia("Erro ao salvar nome do relé", detalhes=str(e))

    logger.info(f"Relé {relay_number} ({alvo}) do master {master_device_id} agora se chama \"{nome}\"")
    return {
        "chave": chave_rele(slave_mac_address, relay_number),
        "master_device_id": master_device_id,
        "slave_mac_address": slave_mac_address,
        "relay_number": relay_number,
        "relay_name": nome,
    }
