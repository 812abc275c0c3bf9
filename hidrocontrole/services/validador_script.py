"""
Validação estrutural dos scripts de instruções.

`validar_instrucoes` percorre a árvore por descida recursiva, acumula
erros recuperáveis com o caminho do nó (ex: "instructions[0].body[2].relay_number")
e devolve uma cópia normalizada, com os defaults aplicados. Só levanta
`ErroEstrutural` para o que não tem interpretação possível: nó que não é
objeto, `type` desconhecido, `relay_action` sem alvo resolvível ou uma
estrutura que referencia a si mesma.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set

from pydantic import TypeAdapter

from hidrocontrole.core.erros import ErroEstrutural
from hidrocontrole.schemas.instrucoes import Instrucao
from hidrocontrole.services.reles import chave_rele

logger = logging.getLogger(__name__)

SENSORES_CONTINUOS = {"temperature", "temp_water", "temp_env", "humidity", "ec", "ph", "tds"}
SENSORES_NIVEL = {"water_level", "level"}
NIVEIS = ("vazio", "baixo", "medio", "alto")

OPERADORES = {"<", ">", "<=", ">=", "==", "!="}
OPERADORES_IGUALDADE = {"==", "!="}

TIPOS = {"while", "if", "relay_action", "switch", "return"}
MAX_RELE = {"master": 15, "slave": 7}

DELAY_WHILE_PADRAO_MS = 1000
CICLO_PADRAO_MS = 5000
TIMER_PADRAO_MS = 1000

_adaptador = TypeAdapter(List[Instrucao])


@dataclass
class ErroInstrucao:
    caminho: str
    campo: str
    mensagem: str

    def como_dict(self) -> Dict[str, str]:
        return {"caminho": self.caminho, "campo": self.campo, "mensagem": self.mensagem}


@dataclass
class ResultadoValidacao:
    erros: List[ErroInstrucao] = field(default_factory=list)
    instrucoes: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def valido(self) -> bool:
        return not self.erros

    def erros_dict(self) -> List[Dict[str, str]]:
        return [e.como_dict() for e in self.erros]

    def tipadas(self) -> list:
        """Árvore tipada (união discriminada); só faz sentido quando `valido`."""
        return _adaptador.validate_python(self.instrucoes)


def _eh_inteiro(valor: Any) -> bool:
    return isinstance(valor, int) and not isinstance(valor, bool)


def _eh_numero(valor: Any) -> bool:
    return isinstance(valor, (int, float)) and not isinstance(valor, bool)


def validar_condicao(condicao: Any, caminho: str, erros: List[ErroInstrucao]) -> None:
    """Valida {sensor, operator, value}; sensores de nível só aceitam == e !=."""
    if not isinstance(condicao, dict):
        erros.append(ErroInstrucao(caminho, "condition", "condition é obrigatória"))
        return

    sensor = condicao.get("sensor")
    operador = condicao.get("operator")
    valor = condicao.get("value")

    if not isinstance(sensor, str) or not sensor.strip():
        erros.append(ErroInstrucao(caminho, "condition.sensor", "sensor é obrigatório"))
        return
    if operador not in OPERADORES:
        erros.append(ErroInstrucao(
            caminho, "condition.operator",
            f"operator inválido: {operador!r} (use {', '.join(sorted(OPERADORES))})",
        ))
        return

    if sensor in SENSORES_NIVEL:
        if operador not in OPERADORES_IGUALDADE:
            erros.append(ErroInstrucao(
                caminho, "condition.operator",
                f"sensor de nível '{sensor}' aceita apenas == ou !=",
            ))
        if valor not in NIVEIS:
            erros.append(ErroInstrucao(
                caminho, "condition.value",
                f"valor de nível deve ser um de {', '.join(NIVEIS)}",
            ))
    elif sensor in SENSORES_CONTINUOS:
        if isinstance(valor, str):
            try:
                float(valor)
            except ValueError:
                erros.append(ErroInstrucao(caminho, "condition.value", f"valor numérico inválido: {valor!r}"))
        elif not _eh_numero(valor):
            erros.append(ErroInstrucao(caminho, "condition.value", "value deve ser numérico"))
    else:
        erros.append(ErroInstrucao(caminho, "condition.sensor", f"sensor desconhecido: {sensor!r}"))


def _normalizar_condicao(condicao: dict) -> dict:
    saida = dict(condicao)
    if saida.get("sensor") in SENSORES_CONTINUOS and isinstance(saida.get("value"), str):
        try:
            saida["value"] = float(saida["value"])
        except ValueError:
            # já registrado por validar_condicao
            return saida
    return saida


def _validar_lista(
    lista: Any,
    caminho: str,
    erros: List[ErroInstrucao],
    em_caminho: Set[int],
) -> List[Dict[str, Any]]:
    if lista is None:
        return []
    if not isinstance(lista, list):
        raise ErroEstrutural(f"{caminho} deve ser uma lista de instruções", campo=caminho)

    if id(lista) in em_caminho:
        raise ErroEstrutural(f"{caminho} referencia a si mesmo", campo=caminho)
    em_caminho.add(id(lista))
    try:
        return [
            _validar_no(no, f"{caminho}[{i}]", erros, em_caminho)
            for i, no in enumerate(lista)
        ]
    finally:
        em_caminho.discard(id(lista))


def _validar_enderecamento(no: dict, caminho: str, erros: List[ErroInstrucao], alvo: str) -> None:
    if alvo == "slave":
        mac = no.get("slave_mac")
        if not isinstance(mac, str) or not mac.strip():
            erros.append(ErroInstrucao(caminho, "slave_mac", "slave_mac é obrigatório quando target=slave"))

    numero = no.get("relay_number")
    limite = MAX_RELE[alvo]
    if not _eh_inteiro(numero) or not 0 <= numero <= limite:
        erros.append(ErroInstrucao(
            caminho, "relay_number", f"relay_number inválido para {alvo} (0-{limite}): {numero!r}",
        ))


def _validar_acao_rele(no: dict, caminho: str, erros: List[ErroInstrucao]) -> dict:
    alvo = no.get("target")
    if alvo not in MAX_RELE:
        raise ErroEstrutural(
            f"{caminho}: relay_action sem alvo resolvível (target={alvo!r})", campo=f"{caminho}.target",
        )

    _validar_enderecamento(no, caminho, erros, alvo)

    if no.get("action") not in ("on", "off"):
        erros.append(ErroInstrucao(caminho, "action", "action deve ser 'on' ou 'off'"))

    duracao = no.get("duration_seconds")
    if duracao is not None and (not _eh_numero(duracao) or duracao < 0):
        erros.append(ErroInstrucao(caminho, "duration_seconds", "duration_seconds deve ser >= 0"))

    saida = dict(no)
    if alvo == "master":
        saida.pop("slave_mac", None)
    return saida


def _validar_switch(no: dict, caminho: str, erros: List[ErroInstrucao]) -> dict:
    saida = dict(no)
    modo = saida.setdefault("switch_mode", "timer")

    if modo == "timer":
        saida.setdefault("duration_ms", TIMER_PADRAO_MS)
        if saida["duration_ms"] is None:
            saida["duration_ms"] = TIMER_PADRAO_MS
        if not _eh_inteiro(saida["duration_ms"]) or saida["duration_ms"] < 0:
            erros.append(ErroInstrucao(caminho, "duration_ms", "duration_ms deve ser um inteiro >= 0"))
    elif modo == "cycle":
        # Ciclo sempre construível: faltando parâmetros, usa defaults (cycle_count 0 = perpétuo)
        for campo, padrao in (("cycle_on_ms", CICLO_PADRAO_MS), ("cycle_off_ms", CICLO_PADRAO_MS), ("cycle_count", 0)):
            if saida.get(campo) is None:
                saida[campo] = padrao
            elif not _eh_inteiro(saida[campo]) or saida[campo] < 0:
                erros.append(ErroInstrucao(caminho, campo, f"{campo} deve ser um inteiro >= 0"))
    else:
        erros.append(ErroInstrucao(caminho, "switch_mode", "switch_mode deve ser 'timer' ou 'cycle'"))

    # Endereçamento é opcional no switch; se vier, segue as mesmas regras do relay_action
    if saida.get("relay_number") is not None or saida.get("target") is not None:
        alvo = saida.setdefault("target", "master")
        if alvo not in MAX_RELE:
            raise ErroEstrutural(
                f"{caminho}: switch com alvo desconhecido (target={alvo!r})", campo=f"{caminho}.target",
            )
        _validar_enderecamento(saida, caminho, erros, alvo)
    return saida


def _validar_no(
    no: Any,
    caminho: str,
    erros: List[ErroInstrucao],
    em_caminho: Set[int],
) -> Dict[str, Any]:
    if not isinstance(no, dict):
        raise ErroEstrutural(f"{caminho} não é uma instrução (objeto esperado)", campo=caminho)
    if id(no) in em_caminho:
        raise ErroEstrutural(f"{caminho} referencia um nó ancestral", campo=caminho)

    tipo = no.get("type")
    if tipo not in TIPOS:
        raise ErroEstrutural(f"{caminho}: tipo de instrução desconhecido {tipo!r}", campo=f"{caminho}.type")

    em_caminho.add(id(no))
    try:
        if tipo == "while":
            saida = dict(no)
            validar_condicao(no.get("condition"), caminho, erros)
            if isinstance(no.get("condition"), dict):
                saida["condition"] = _normalizar_condicao(no["condition"])
            if saida.get("delay_ms") is None:
                saida["delay_ms"] = DELAY_WHILE_PADRAO_MS
            elif not _eh_inteiro(saida["delay_ms"]) or saida["delay_ms"] < 0:
                erros.append(ErroInstrucao(caminho, "delay_ms", "delay_ms deve ser um inteiro >= 0"))
            saida["body"] = _validar_lista(no.get("body"), f"{caminho}.body", erros, em_caminho)
            return saida

        if tipo == "if":
            saida = dict(no)
            validar_condicao(no.get("condition"), caminho, erros)
            if isinstance(no.get("condition"), dict):
                saida["condition"] = _normalizar_condicao(no["condition"])
            saida["then"] = _validar_lista(no.get("then"), f"{caminho}.then", erros, em_caminho)
            if no.get("else") is not None:
                saida["else"] = _validar_lista(no["else"], f"{caminho}.else", erros, em_caminho)
            else:
                saida.pop("else", None)
            return saida

        if tipo == "relay_action":
            return _validar_acao_rele(no, caminho, erros)

        if tipo == "switch":
            return _validar_switch(no, caminho, erros)

        return {"type": "return"}
    finally:
        em_caminho.discard(id(no))


def validar_instrucoes(instrucoes: Any, exigir_script: bool = True) -> ResultadoValidacao:
    """
    Valida uma lista de instruções e devolve erros + cópia normalizada.

    Não altera a entrada. Levanta `ErroEstrutural` apenas para árvores
    impossíveis de interpretar; todo o resto vira `ErroInstrucao`.
    """
    resultado = ResultadoValidacao()

    if instrucoes is None:
        instrucoes = []
    if not isinstance(instrucoes, list):
        raise ErroEstrutural("instructions deve ser uma lista", campo="instructions")

    if exigir_script and not instrucoes:
        resultado.erros.append(ErroInstrucao("instructions", "instructions", "adicione pelo menos uma instrução"))
        return resultado

    resultado.instrucoes = _validar_lista(instrucoes, "instructions", resultado.erros, set())
    if resultado.erros:
        logger.debug(f"Script com {len(resultado.erros)} erro(s) de validação")
    return resultado


def extrair_acoes_rele(instrucoes: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Todas as relay_action da árvore, em ordem de profundidade (body, then, else)."""
    acoes: List[Dict[str, Any]] = []

    def percorrer(no: Dict[str, Any]) -> None:
        if no.get("type") == "relay_action":
            acoes.append(no)
        for chave in ("body", "then", "else"):
            for filho in no.get(chave) or []:
                percorrer(filho)

    for instrucao in instrucoes:
        percorrer(instrucao)
    return acoes


def chave_acao(acao: Dict[str, Any]) -> str:
    """Chave de relé de uma relay_action já validada."""
    mac = acao.get("slave_mac") if acao.get("target") == "slave" else None
    return chave_rele(mac, acao["relay_number"])
