"""
Controlador de EC: configuração por dispositivo e despacho das dosagens.

O cálculo em si fica em `dosagem` (puro); aqui entram store, intervalo
mínimo entre dosagens e a criação dos comandos 'peristaltic'.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hidrocontrole.core.erros import ErroPersistencia, ErroPrecondicao, ErroValidacao
from hidrocontrole.models.comando import ComandoRele
from hidrocontrole.models.config_ec import ConfigEC
from hidrocontrole.schemas.comando import ComandoIn
from hidrocontrole.schemas.config_ec import ConfigECIn, ConfigECOut, NutrienteConfig
from hidrocontrole.services import comandos
from hidrocontrole.services.dosagem import PlanoDosagem, calcular_dosagem, duracao_acionamento_manual
from hidrocontrole.services.leituras import ultimo_ec

logger = logging.getLogger(__name__)

KP_FIXO = 1.0


def _config_padrao(device_id: str) -> ConfigECOut:
    return ConfigECOut(device_id=device_id, kp=KP_FIXO)


def _buscar(db: Session, device_id: str) -> Optional[ConfigEC]:
    return db.query(ConfigEC).filter(ConfigEC.device_id == device_id).first()


def _nao_encontrada(device_id: str) -> ErroPrecondicao:
    return ErroPrecondicao(
        f"Nenhuma configuração de EC salva para {device_id}",
        campo="device_id",
        codigo="config_ec_nao_encontrada",
        status_code=404,
    )


def _commit(db: Session, config: ConfigEC, operacao: str) -> ConfigEC:
    try:
        db.add(config)
        db.commit()
        db.refresh(config)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Erro ao {operacao} config EC de {config.device_id}")
        raise ErroPersistencia("Erro ao salvar configuração do controlador de EC", detalhes=str(e))
    return config


def obter_config(db: Session, device_id: str) -> ConfigECOut:
    """Config salva, ou a padrão (tudo zerado) sem gravar nada."""
    config = _buscar(db, device_id)
    if config is None:
        return _config_padrao(device_id)
    return ConfigECOut.model_validate(config)


def validar_config(entrada: ConfigECIn) -> None:
    """Checagens da config de EC, sem tocar no store."""
    if not entrada.device_id or not entrada.device_id.strip():
        raise ErroValidacao("device_id é obrigatório", campo="device_id")
    for campo in ("base_dose", "flow_rate", "volume", "ec_setpoint"):
        if getattr(entrada, campo) < 0:
            raise ErroValidacao(f"{campo} não pode ser negativo", campo=campo)
    for i, nutriente in enumerate(entrada.nutrients):
        if not nutriente.name.strip():
            raise ErroValidacao("nome do nutriente é obrigatório", campo=f"nutrients[{i}].name")
        if not comandos.RELE_MIN <= nutriente.relay_number <= comandos.RELE_MAX:
            raise ErroValidacao(
                f"relay_number inválido ({comandos.RELE_MIN}-{comandos.RELE_MAX})",
                campo=f"nutrients[{i}].relay_number",
            )
        if nutriente.ml_per_liter < 0:
            raise ErroValidacao("ml_per_liter não pode ser negativo", campo=f"nutrients[{i}].ml_per_liter")


def salvar_config(db: Session, entrada: ConfigECIn) -> ConfigECOut:
    """Upsert por device_id. kp é sempre 1.0."""
    validar_config(entrada)

    config = _buscar(db, entrada.device_id) or ConfigEC(device_id=entrada.device_id)
    config.base_dose = entrada.base_dose
    config.flow_rate = entrada.flow_rate
    config.volume = entrada.volume
    config.ec_setpoint = entrada.ec_setpoint
    config.kp = KP_FIXO
    config.auto_enabled = entrada.auto_enabled
    config.interval_between_checks_seconds = entrada.interval_between_checks_seconds
    config.recirculation_seconds = entrada.recirculation_seconds
    config.nutrients = [n.model_dump() for n in entrada.nutrients]

    config = _commit(db, config, "salvar")
    logger.info(
        f"Config EC salva para {config.device_id}: setpoint={config.ec_setpoint} "
        f"nutrientes={len(config.nutrients)} auto={config.auto_enabled}"
    )
    return ConfigECOut.model_validate(config)


def ativar_auto(db: Session, device_id: str) -> ConfigECOut:
    """Só liga o modo automático sobre uma config já persistida; nunca cria uma."""
    config = _buscar(db, device_id)
    if config is None:
        raise _nao_encontrada(device_id)
    config.auto_enabled = True
    return ConfigECOut.model_validate(_commit(db, config, "ativar"))


def desativar_auto(db: Session, device_id: str) -> ConfigECOut:
    config = _buscar(db, device_id)
    if config is None:
        raise _nao_encontrada(device_id)
    config.auto_enabled = False
    return ConfigECOut.model_validate(_commit(db, config, "desativar"))


def _resolver_ec(db: Session, device_id: str, ec_medido: Optional[float]) -> float:
    if ec_medido is not None:
        return ec_medido
    ec = ultimo_ec(db, device_id)
    if ec is None:
        raise ErroPrecondicao(
            f"Nenhuma leitura de EC disponível para {device_id}",
            campo="ec_medido",
            codigo="sem_leitura_ec",
        )
    return ec


def calcular_plano(db: Session, device_id: str, ec_medido: Optional[float] = None) -> Tuple[float, Optional[PlanoDosagem]]:
    config = obter_config(db, device_id)
    ec = _resolver_ec(db, device_id, ec_medido)
    return ec, calcular_dosagem(config, ec)


def dosar(
    db: Session,
    device_id: str,
    ec_medido: Optional[float] = None,
    forcar: bool = False,
    agora: Optional[datetime] = None,
) -> dict:
    """
    Calcula o plano e emite um comando 'peristaltic' por nutriente.

    Não dosa de novo antes de interval_between_checks_seconds desde a
    última dosagem, a menos que `forcar`.
    """
    config = _buscar(db, device_id)
    if config is None:
        raise _nao_encontrada(device_id)

    agora = agora or datetime.utcnow()
    if not forcar and config.ultima_dosagem_em is not None:
        proxima = config.ultima_dosagem_em + timedelta(seconds=config.interval_between_checks_seconds)
        if agora < proxima:
            restante = int((proxima - agora).total_seconds())
            return {"executada": False, "motivo": f"intervalo mínimo não atingido ({restante}s restantes)"}

    ec = _resolver_ec(db, device_id, ec_medido)
    plano = calcular_dosagem(ConfigECOut.model_validate(config), ec)
    if plano is None:
        return {"executada": False, "motivo": "configuração insuficiente ou correção desprezível"}

    emitidos: List[ComandoRele] = []
    for dose in plano.doses:
        emitidos.append(comandos.emitir_comando(
            db,
            ComandoIn(
                master_device_id=device_id,
                relay_number=dose.relay_number,
                action="on",
                duration_seconds=dose.duration_seconds,
                triggered_by="peristaltic",
                command_type="peristaltic",
                rule_name=f"Dosagem EC: {dose.name} ({dose.dose_ml} ml)",
            ),
            created_by="ec_controller",
        ))

    config.ultima_dosagem_em = agora
    _commit(db, config, "registrar dosagem na")
    logger.info(
        f"Dosagem EC em {device_id}: medido={ec} setpoint={config.ec_setpoint} "
        f"volume={plano.volume_total_ml:.3f} ml em {len(emitidos)} comando(s)"
    )
    return {
        "executada": True,
        "plano": plano.como_dict(),
        "command_ids": [c.id for c in emitidos],
    }


def acionar_nutriente(db: Session, device_id: str, relay_number: int) -> ComandoRele:
    """Aciona manualmente a bomba de um nutriente pela receita completa."""
    config = _buscar(db, device_id)
    if config is None:
        raise _nao_encontrada(device_id)

    nutriente = next(
        (NutrienteConfig(**n) for n in config.nutrients or [] if n.get("relay_number") == relay_number),
        None,
    )
    if nutriente is None:
        raise ErroPrecondicao(
            f"Nenhum nutriente configurado no relé {relay_number}",
            campo="relay_number",
            codigo="nutriente_nao_encontrado",
            status_code=404,
        )

    duracao = duracao_acionamento_manual(nutriente, config.volume, config.flow_rate)
    if duracao is None:
        raise ErroValidacao(
            "volume e flow_rate precisam ser maiores que zero para calcular a duração",
            campo="flow_rate",
        )

    rotulo = "Dosagem" if nutriente.ml_per_liter > 0 else "Ativação"
    return comandos.emitir_comando(
        db,
        ComandoIn(
            master_device_id=device_id,
            relay_number=relay_number,
            action="on",
            duration_seconds=duracao,
            triggered_by="manual",
            command_type="manual",
            rule_name=f"{rotulo}: {nutriente.name}",
        ),
        created_by="ec_controller",
    )
