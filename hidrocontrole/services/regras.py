"""
Fachada de regras: conteúdo do operador -> registro persistido em `regras`.

Com pelo menos uma instrução a regra vai no formato script
({"script": {...}}); senão, no formato composto
({"conditions": [...], "actions": [...]}). Nunca os dois.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hidrocontrole.core.erros import ErroPersistencia, ErroPrecondicao, ErroValidacao
from hidrocontrole.models.comando import ComandoRele
from hidrocontrole.models.dispositivo import Dispositivo
from hidrocontrole.models.regra import Regra
from hidrocontrole.schemas.comando import ComandoIn
from hidrocontrole.schemas.instrucoes import instrucoes_para_json
from hidrocontrole.schemas.regra import RegraIn, ScriptIn
from hidrocontrole.services import comandos
from hidrocontrole.services.validador_script import (
    MAX_RELE,
    ErroInstrucao,
    chave_acao,
    extrair_acoes_rele,
    validar_condicao,
    validar_instrucoes,
)

logger = logging.getLogger(__name__)


def limitar_prioridade(prioridade: int) -> int:
    return max(0, min(100, int(prioridade)))


def _como_lista(valor: Any) -> list:
    if valor is None:
        return []
    if isinstance(valor, (list, tuple)):
        return list(valor)
    return [valor]


def normalizar_acoes(acoes: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """relay_ids/relay_names sempre como lista, mesmo vindo escalar (relayId/relayName)."""
    normalizadas = []
    for acao in acoes:
        ids = acao.get("relay_ids", acao.get("relayIds"))
        if ids is None:
            ids = acao.get("relay_id", acao.get("relayId"))
        nomes = acao.get("relay_names", acao.get("relayNames"))
        if nomes is None:
            nomes = acao.get("relay_name", acao.get("relayName"))

        normalizadas.append({
            "relay_ids": _como_lista(ids),
            "relay_names": _como_lista(nomes),
            "duration": acao.get("duration") or 0,
            "target_device_id": acao.get("target_device_id"),
            "slave_mac_address": acao.get("slave_mac_address"),
        })
    return normalizadas


def _validar_composto(conditions: List[Dict[str, Any]], acoes: List[Dict[str, Any]]) -> List[ErroInstrucao]:
    erros: List[ErroInstrucao] = []
    if not conditions:
        erros.append(ErroInstrucao("conditions", "conditions", "conditions não pode estar vazio"))
    for i, condicao in enumerate(conditions):
        validar_condicao(condicao, f"conditions[{i}]", erros)

    if not acoes:
        erros.append(ErroInstrucao("actions", "actions", "adicione pelo menos uma ação ou instrução"))
    for i, acao in enumerate(acoes):
        caminho = f"actions[{i}]"
        limite = MAX_RELE["slave" if acao["slave_mac_address"] else "master"]
        if not acao["relay_ids"]:
            erros.append(ErroInstrucao(caminho, "relay_ids", "relay_ids não pode estar vazio"))
        for numero in acao["relay_ids"]:
            if not isinstance(numero, int) or isinstance(numero, bool) or not 0 <= numero <= limite:
                erros.append(ErroInstrucao(caminho, "relay_ids", f"relay inválido: {numero!r} (0-{limite})"))
        duracao = acao["duration"]
        if not isinstance(duracao, (int, float)) or isinstance(duracao, bool) or duracao < 0:
            erros.append(ErroInstrucao(caminho, "duration", "duration deve ser um número não negativo"))
    return erros


def montar_rule_json(entrada: RegraIn) -> Dict[str, Any]:
    """Escolhe o formato e devolve o rule_json validado e normalizado."""
    script = entrada.script or ScriptIn()

    if script.instructions:
        resultado = validar_instrucoes(script.instructions)
        if not resultado.valido:
            raise ErroValidacao(
                "Script de instruções inválido", campo="script.instructions", detalhes=resultado.erros_dict(),
            )
        return {
            "script": {
                "instructions": instrucoes_para_json(resultado.tipadas()),
                "max_iterations": script.max_iterations,
                "loop_interval_ms": script.loop_interval_ms,
                "cooldown_seconds": script.cooldown_seconds,
                "max_executions_per_hour": script.max_executions_per_hour,
                "chained_events": [e.model_dump() for e in script.chained_events],
            }
        }

    acoes = normalizar_acoes(entrada.actions)
    erros = _validar_composto(entrada.conditions, acoes)
    if erros:
        raise ErroValidacao(
            "Regra inválida", campo="rule_json", detalhes=[e.como_dict() for e in erros],
        )
    return {"conditions": list(entrada.conditions), "actions": acoes}


def _eventos_encadeados(rule_json: Dict[str, Any]) -> List[str]:
    script = rule_json.get("script") or {}
    return [e.get("target_rule_id") for e in script.get("chained_events") or [] if e.get("target_rule_id")]


def verificar_ciclo_encadeado(db: Session, device_id: str, rule_id: str, rule_json: Dict[str, Any]) -> None:
    """
    Rejeita a regra se os eventos encadeados formarem um ciclo com as regras
    já gravadas do mesmo dispositivo (incluindo encadear para si mesma).
    """
    grafo: Dict[str, List[str]] = {
        r.rule_id: _eventos_encadeados(r.rule_json or {})
        for r in db.query(Regra).filter(Regra.device_id == device_id).all()
    }
    grafo[rule_id] = _eventos_encadeados(rule_json)

    pilha = [(rule_id, [rule_id])]
    visitados = set()
    while pilha:
        atual, trilha = pilha.pop()
        for proximo in grafo.get(atual, []):
            if proximo == rule_id:
                raise ErroValidacao(
                    "Eventos encadeados formam um ciclo: " + " -> ".join(trilha + [proximo]),
                    campo="script.chained_events",
                )
            if proximo not in visitados:
                visitados.add(proximo)
                pilha.append((proximo, trilha + [proximo]))


def _gerar_rule_id(db: Session, device_id: str) -> str:
    while True:
        candidato = f"RULE_{uuid.uuid4().hex[:12]}"
        existe = db.query(Regra).filter(Regra.device_id == device_id, Regra.rule_id == candidato).first()
        if not existe:
            return candidato


def _persistir(db: Session, regra: Regra, operacao: str) -> Regra:
    try:
        db.add(regra)
        db.commit()
        db.refresh(regra)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Erro ao {operacao} regra {regra.rule_id} do dispositivo {regra.device_id}")
        raise ErroPersistencia(f"Erro ao {operacao} regra de automação", detalhes=str(e))
    return regra


def obter_regra(db: Session, regra_id: UUID) -> Regra:
    regra = db.query(Regra).filter(Regra.id == regra_id).first()
    if regra is None:
        raise ErroPrecondicao(
            "Regra não encontrada", campo="id", codigo="regra_nao_encontrada", status_code=404,
        )
    return regra


def salvar_regra(db: Session, entrada: RegraIn, regra_id: Optional[UUID] = None) -> Regra:
    """
    Cria (regra_id None) ou substitui por completo o rule_json de uma regra.

    Na criação, um rule_id já existente no mesmo dispositivo identifica a
    mesma regra: o registro é reaproveitado em vez de duplicado.
    """
    if not entrada.rule_name or not entrada.rule_name.strip():
        raise ErroValidacao("rule_name é obrigatório", campo="rule_name")
    if not entrada.device_id or not entrada.device_id.strip():
        raise ErroValidacao("device_id é obrigatório", campo="device_id")

    dispositivo = db.query(Dispositivo).filter(Dispositivo.device_id == entrada.device_id).first()
    if dispositivo is None:
        raise ErroPrecondicao(
            f'device_id "{entrada.device_id}" não está registrado',
            campo="device_id",
            codigo="dispositivo_nao_registrado",
        )

    rule_json = montar_rule_json(entrada)

    if regra_id is not None:
        regra = obter_regra(db, regra_id)
        operacao = "atualizar"
        if entrada.rule_id and entrada.rule_id != regra.rule_id:
            conflito = (
                db.query(Regra)
                .filter(Regra.device_id == entrada.device_id, Regra.rule_id == entrada.rule_id, Regra.id != regra.id)
                .first()
            )
            if conflito:
                raise ErroValidacao(f"rule_id {entrada.rule_id} já pertence a outra regra", campo="rule_id")
            regra.rule_id = entrada.rule_id
    else:
        operacao = "criar"
        regra = None
        if entrada.rule_id:
            regra = (
                db.query(Regra)
                .filter(Regra.device_id == entrada.device_id, Regra.rule_id == entrada.rule_id)
                .first()
            )
        if regra is None:
            regra = Regra(rule_id=entrada.rule_id or _gerar_rule_id(db, entrada.device_id))

    if len(regra.rule_id) < 3:
        raise ErroValidacao("rule_id deve ter pelo menos 3 caracteres", campo="rule_id")

    verificar_ciclo_encadeado(db, entrada.device_id, regra.rule_id, rule_json)

    regra.device_id = entrada.device_id
    regra.rule_name = entrada.rule_name.strip()
    regra.rule_description = (entrada.rule_description or "").strip() or None
    regra.rule_json = rule_json
    regra.enabled = entrada.enabled
    regra.priority = limitar_prioridade(entrada.priority)
    regra.created_by = entrada.created_by or regra.created_by or "system"

    regra = _persistir(db, regra, operacao)
    logger.info(
        f"Regra {regra.rule_id} ({regra.rule_name}) salva para {regra.device_id} "
        f"[{'script' if 'script' in rule_json else 'composta'}]"
    )
    return regra


def listar_regras(db: Session, device_id: str) -> List[Regra]:
    return (
        db.query(Regra)
        .filter(Regra.device_id == device_id)
        .order_by(Regra.priority.desc(), Regra.rule_name)
        .all()
    )


def alternar_regra(db: Session, regra_id: UUID, enabled: bool) -> Regra:
    regra = obter_regra(db, regra_id)
    regra.enabled = enabled
    return _persistir(db, regra, "atualizar")


def excluir_regra(db: Session, regra_id: UUID) -> None:
    regra = obter_regra(db, regra_id)
    try:
        db.delete(regra)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Erro ao excluir regra {regra_id}")
        raise ErroPersistencia("Erro ao excluir regra de automação", detalhes=str(e))


def _pedidos_da_regra(regra: Regra) -> List[ComandoIn]:
    """Um pedido por chave de relé; para a mesma chave vale a última ação da árvore."""
    rule_json = regra.rule_json or {}
    base = {
        "master_device_id": regra.device_id,
        "triggered_by": "rule",
        "command_type": "rule",
        "rule_id": regra.rule_id,
        "rule_name": regra.rule_name,
    }

    por_chave: Dict[str, ComandoIn] = {}
    if "script" in rule_json:
        for acao in extrair_acoes_rele(rule_json["script"].get("instructions") or []):
            slave = acao.get("slave_mac") if acao.get("target") == "slave" else None
            por_chave[chave_acao(acao)] = ComandoIn(
                slave_mac_address=slave,
                relay_number=acao["relay_number"],
                action=acao["action"],
                duration_seconds=acao.get("duration_seconds"),
                **base,
            )
    else:
        for acao in rule_json.get("actions") or []:
            for numero in acao.get("relay_ids") or []:
                slave = acao.get("slave_mac_address")
                por_chave[f"{slave or 'master'}-{numero}"] = ComandoIn(
                    slave_mac_address=slave,
                    slave_name=acao.get("target_device_id") if slave else None,
                    relay_number=numero,
                    action="on",
                    duration_seconds=acao.get("duration") or None,
                    **base,
                )
    return list(por_chave.values())


def executar_regra(db: Session, regra_id: UUID) -> List[ComandoRele]:
    """
    Despacha agora os relés da regra como comandos 'rule'. A prioridade
    vem da própria regra (resolução por rule_id).
    """
    regra = obter_regra(db, regra_id)
    emitidos = [comandos.emitir_comando(db, pedido) for pedido in _pedidos_da_regra(regra)]
    logger.info(f"Regra {regra.rule_id} executada: {len(emitidos)} comando(s) criado(s)")
    return emitidos
