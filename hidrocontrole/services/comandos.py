"""
Emissão e acompanhamento de comandos de relé.

Fluxo de um comando:
  1. `emitir_comando` valida, resolve tipo/prioridade/dispositivo e grava
     em relay_commands com status 'pending'
  2. O master busca os pendentes (ou recebe o aviso MQTT) e repassa via ESP-NOW
  3. O executor reporta 'sent' e depois 'completed' ou 'failed'

Este módulo nunca muda o status por conta própria: `atualizar_status` só
registra o que o executor reportou.
"""
import logging
import math
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hidrocontrole.core.erros import ErroPersistencia, ErroPrecondicao, ErroValidacao
from hidrocontrole.core.mqtt_client import publicar_aviso_comando
from hidrocontrole.models.comando import ComandoRele
from hidrocontrole.models.dispositivo import Dispositivo
from hidrocontrole.models.regra import Regra
from hidrocontrole.schemas.comando import ComandoIn

logger = logging.getLogger(__name__)

RELE_MIN, RELE_MAX = 0, 15
DURACAO_MAX_S = 86400
ACOES = ("on", "off")

TIPOS_COMANDO = ("manual", "rule", "peristaltic")
PRIORIDADE_PADRAO = {
    "manual": 10,
    "rule": 50,
    "peristaltic": 80,
}

STATUS_ACK = ("sent", "completed", "failed")


def _eh_numero(valor: Any) -> bool:
    if isinstance(valor, bool) or not isinstance(valor, (int, float)):
        return False
    # json aceita NaN/Infinity
    return not isinstance(valor, float) or math.isfinite(valor)


def validar_parametros(pedido: ComandoIn) -> None:
    """Validação síncrona, antes de qualquer leitura ou escrita no store."""
    if not pedido.master_device_id or not pedido.master_device_id.strip():
        raise ErroValidacao("master_device_id é obrigatório", campo="master_device_id")

    numero = pedido.relay_number
    if not _eh_numero(numero) or int(numero) != numero or not RELE_MIN <= numero <= RELE_MAX:
        raise ErroValidacao(f"relay_number inválido ({RELE_MIN}-{RELE_MAX})", campo="relay_number")

    if pedido.action not in ACOES:
        raise ErroValidacao("action deve ser 'on' ou 'off'", campo="action")

    duracao = pedido.duration_seconds
    if duracao is not None and (not _eh_numero(duracao) or not 0 <= duracao <= DURACAO_MAX_S):
        raise ErroValidacao(f"duration_seconds inválido (0-{DURACAO_MAX_S})", campo="duration_seconds")

    if pedido.command_type is not None and pedido.command_type not in TIPOS_COMANDO:
        raise ErroValidacao(
            f"command_type deve ser um de {', '.join(TIPOS_COMANDO)}", campo="command_type",
        )

    prioridade = pedido.priority
    if prioridade is not None and (not _eh_numero(prioridade) or not 0 <= prioridade <= 100):
        raise ErroValidacao("priority deve estar entre 0 e 100", campo="priority")

    # bomba peristáltica ligada sem tempo não desliga sozinha
    tipo = inferir_tipo_comando(pedido.command_type, pedido.triggered_by)
    if tipo == "peristaltic" and pedido.action == "on" and not duracao:
        raise ErroValidacao(
            "comandos peristaltic 'on' exigem duration_seconds maior que zero", campo="duration_seconds",
        )


def inferir_tipo_comando(command_type: Optional[str], triggered_by: Optional[str]) -> str:
    if command_type:
        return command_type
    if triggered_by in ("automation", "rule"):
        return "rule"
    if triggered_by == "peristaltic":
        return "peristaltic"
    return "manual"


def resolver_prioridade(
    db: Session,
    tipo: str,
    master_device_id: str,
    priority: Optional[int] = None,
    rule_id: Optional[str] = None,
) -> int:
    """Explícita > prioridade da regra (só para tipo 'rule') > default por tipo."""
    if priority is not None:
        return int(priority)

    if tipo == "rule" and rule_id:
        regra = (
            db.query(Regra)
            .filter(Regra.rule_id == rule_id, Regra.device_id == master_device_id)
            .first()
        )
        if regra is not None and regra.priority is not None:
            logger.debug(f"Prioridade da regra {rule_id}: {regra.priority}")
            return regra.priority

    return PRIORIDADE_PADRAO.get(tipo, PRIORIDADE_PADRAO["manual"])


def resolver_master(db: Session, master_device_id: str) -> Dispositivo:
    """
    O master precisa estar registrado com endereço de rádio e conta dona.
    Cada ausência tem seu próprio código, para o operador saber o que cadastrar.
    """
    master = db.query(Dispositivo).filter(Dispositivo.device_id == master_device_id).first()
    if master is None:
        raise ErroPrecondicao(
            f'device_id "{master_device_id}" não está registrado',
            campo="master_device_id",
            codigo="dispositivo_nao_registrado",
            detalhes="O Master precisa estar registrado antes de criar comandos.",
        )
    if not master.mac_address:
        raise ErroPrecondicao(
            f'Master "{master_device_id}" não tem mac_address registrado',
            campo="master_device_id",
            codigo="dispositivo_sem_mac",
        )
    if not master.user_email:
        raise ErroPrecondicao(
            f'Master "{master_device_id}" não tem user_email registrado',
            campo="master_device_id",
            codigo="dispositivo_sem_dono",
        )
    return master


def slave_device_id(slave_mac: str) -> str:
    return "ESP32_SLAVE_" + slave_mac.replace(":", "_")


def emitir_comando(db: Session, pedido: ComandoIn, created_by: str = "web_interface") -> ComandoRele:
    validar_parametros(pedido)
    master = resolver_master(db, pedido.master_device_id)

    tipo = inferir_tipo_comando(pedido.command_type, pedido.triggered_by)
    prioridade = resolver_prioridade(db, tipo, pedido.master_device_id, pedido.priority, pedido.rule_id)

    # None = manter até o próximo comando; 0 é gravado assim
    duracao = pedido.duration_seconds
    if duracao == 0:
        duracao = None

    comando = ComandoRele(
        device_id=pedido.master_device_id,
        relay_number=int(pedido.relay_number),
        action=pedido.action,
        duration_seconds=duracao,
        status="pending",
        command_type=tipo,
        priority=prioridade,
        triggered_by=pedido.triggered_by,
        rule_id=pedido.rule_id,
        rule_name=pedido.rule_name,
        created_by=created_by,
        master_mac_address=master.mac_address,
        user_email=master.user_email,
    )
    if pedido.slave_mac_address:
        comando.slave_mac_address = pedido.slave_mac_address
        comando.slave_device_id = slave_device_id(pedido.slave_mac_address)
        comando.target_device_id = pedido.slave_name or comando.slave_device_id

    try:
        db.add(comando)
        db.commit()
        db.refresh(comando)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(
            f"Erro ao criar comando: master={pedido.master_device_id} "
            f"slave={pedido.slave_mac_address} relay={pedido.relay_number} action={pedido.action}"
        )
        raise ErroPersistencia("Erro ao criar comando de relé", detalhes=str(e))

    logger.info(
        f"Comando {comando.id} criado: {comando.action} relé {comando.relay_number} "
        f"{'no slave ' + comando.slave_mac_address if comando.slave_mac_address else 'local'} "
        f"(tipo={tipo}, prioridade={prioridade})"
    )
    publicar_aviso_comando(comando)
    return comando


def resposta_emissao(comando: ComandoRele) -> dict:
    """Resposta da criação: id atribuído + eco dos campos resolvidos."""
    return {
        "success": True,
        "message": f"Comando {comando.action} criado com sucesso",
        "command_id": comando.id,
        "command": {
            "id": comando.id,
            "device_id": comando.slave_mac_address or comando.device_id,
            "master_device_id": comando.device_id,
            "target_device_id": comando.target_device_id,
            "relay_number": comando.relay_number,
            "action": comando.action,
            "duration_seconds": comando.duration_seconds,
            "status": comando.status,
            "command_type": comando.command_type,
            "priority": comando.priority,
            "is_local": not comando.slave_mac_address,
            "is_slave": bool(comando.slave_mac_address),
            "slave_mac": comando.slave_mac_address,
        },
    }


def listar_pendentes(db: Session, master_device_id: str, limit: int = 20) -> List[ComandoRele]:
    """Fila do executor: maior prioridade primeiro, depois ordem de criação."""
    return (
        db.query(ComandoRele)
        .filter(ComandoRele.device_id == master_device_id, ComandoRele.status == "pending")
        .order_by(ComandoRele.priority.desc(), ComandoRele.id.asc())
        .limit(limit)
        .all()
    )


def atualizar_status(
    db: Session,
    command_id: int,
    status: str,
    error_message: Optional[str] = None,
    master_device_id: Optional[str] = None,
) -> ComandoRele:
    """
    Registra a transição reportada pelo executor (sent/completed/failed).

    Com `master_device_id`, só aceita comandos daquele master.
    """
    if status not in STATUS_ACK:
        raise ErroValidacao(f"status deve ser um de {', '.join(STATUS_ACK)}", campo="status")

    comando = db.query(ComandoRele).filter(ComandoRele.id == command_id).first()
    if comando is None:
        raise ErroPrecondicao(
            f"Comando {command_id} não encontrado", codigo="comando_nao_encontrado", status_code=404,
        )
    if master_device_id is not None and comando.device_id != master_device_id:
        raise ErroPrecondicao(
            f"Comando {command_id} não pertence ao master {master_device_id}",
            campo="master_device_id",
            codigo="comando_de_outro_master",
        )

    comando.status = status
    if error_message:
        comando.error_message = error_message
    try:
        db.commit()
        db.refresh(comando)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Erro ao atualizar status do comando {command_id} para {status}")
        raise ErroPersistencia("Erro ao atualizar status do comando", detalhes=str(e))

    if status == "failed":
        logger.warning(f"Executor reportou falha no comando {command_id}: {error_message or 'sem detalhes'}")
    return comando


def listar_acks(
    db: Session,
    master_device_id: str,
    command_id: Optional[int] = None,
    limit: int = 50,
    command_ids: Optional[List[int]] = None,
) -> List[dict]:
    """ACKs = comandos já tocados pelo executor (sent/completed/failed), mais recentes primeiro."""
    q = (
        db.query(ComandoRele)
        .filter(ComandoRele.device_id == master_device_id, ComandoRele.status.in_(STATUS_ACK))
    )
    if command_id is not None:
        q = q.filter(ComandoRele.id == command_id)
    if command_ids:
        q = q.filter(ComandoRele.id.in_(command_ids))

    comandos = q.order_by(ComandoRele.atualizado_em.desc(), ComandoRele.id.desc()).limit(limit).all()
    return [
        {
            "command_id": c.id,
            "device_id": c.device_id,
            "target_device_id": c.target_device_id,
            "slave_mac_address": c.slave_mac_address,
            "relay_number": c.relay_number,
            "action": c.action,
            "success": c.status == "completed",
            "status": c.status,
            "error_message": c.error_message,
            "atualizado_em": c.atualizado_em,
        }
        for c in comandos
    ]
