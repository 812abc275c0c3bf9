import uuid

import pytest

from conftest import MASTER_ID, SLAVE_MAC
from hidrocontrole.core.erros import ErroPrecondicao, ErroValidacao
from hidrocontrole.models.regra import Regra
from hidrocontrole.schemas.regra import RegraIn, ScriptIn
from hidrocontrole.services import regras


def _script(*instrucoes, **kwargs):
    return ScriptIn(instructions=list(instrucoes), **kwargs)


def _acao(relay_number, action="on", **kwargs):
    no = {"type": "relay_action", "target": "master", "relay_number": relay_number, "action": action}
    no.update(kwargs)
    return no


CONDICAO_EC = {"sensor": "ec", "operator": "<", "value": 1200}


def _regra(**kwargs):
    base = {"device_id": MASTER_ID, "rule_name": "Irrigação noturna", "conditions": [CONDICAO_EC]}
    base.update(kwargs)
    return RegraIn(**base)


def test_formato_composto_normaliza_escalares(db, master):
    regra = regras.salvar_regra(db, _regra(
        conditions=[{"sensor": "temperature", "operator": ">", "value": 28}],
        actions=[
            {"relayId": 3, "relayName": "Ventilador", "duration": 120},
            {"relay_ids": [4, 5], "relay_names": ["Bomba A", "Bomba B"]},
        ],
    ))

    assert regra.rule_id.startswith("RULE_")
    assert "script" not in regra.rule_json
    acoes = regra.rule_json["actions"]
    assert acoes[0]["relay_ids"] == [3]
    assert acoes[0]["relay_names"] == ["Ventilador"]
    assert acoes[1]["relay_ids"] == [4, 5]
    assert acoes[1]["duration"] == 0


def test_acao_sem_nomes_vira_lista_vazia():
    assert regras.normalizar_acoes([{"relay_ids": [1]}])[0]["relay_names"] == []


def test_formato_script_quando_ha_instrucoes(db, master):
    regra = regras.salvar_regra(db, _regra(
        conditions=[{"sensor": "ec", "operator": "<", "value": 1200}],
        script=_script(
            {"type": "switch", "switch_mode": "cycle", "relay_number": 2},
            cooldown_seconds=120,
        ),
    ))

    assert set(regra.rule_json) == {"script"}
    script = regra.rule_json["script"]
    assert script["cooldown_seconds"] == 120
    assert script["instructions"][0]["cycle_count"] == 0


def test_rule_ids_gerados_sao_distintos(db, master):
    a = regras.salvar_regra(db, _regra(actions=[{"relay_ids": [1]}]))
    b = regras.salvar_regra(db, _regra(actions=[{"relay_ids": [1]}]))
    assert a.rule_id != b.rule_id
    assert a.id != b.id


def test_nome_obrigatorio(db, master):
    with pytest.raises(ErroValidacao) as exc:
        regras.salvar_regra(db, _regra(rule_name="   ", actions=[{"relay_ids": [1]}]))
    assert exc.value.campo == "rule_name"


def test_dispositivo_nao_registrado(db):
    with pytest.raises(ErroPrecondicao) as exc:
        regras.salvar_regra(db, _regra(actions=[{"relay_ids": [1]}]))
    assert exc.value.codigo == "dispositivo_nao_registrado"


@pytest.mark.parametrize("informada,gravada", [(150, 100), (-5, 0), (42, 42)])
def test_prioridade_limitada(db, master, informada, gravada):
    regra = regras.salvar_regra(db, _regra(priority=informada, actions=[{"relay_ids": [1]}]))
    assert regra.priority == gravada


def test_regra_vazia(db, master):
    with pytest.raises(ErroValidacao):
        regras.salvar_regra(db, _regra())
    assert db.query(Regra).count() == 0


def test_composta_sem_condicoes(db, master):
    with pytest.raises(ErroValidacao) as exc:
        regras.salvar_regra(db, _regra(conditions=[], actions=[{"relay_ids": [1]}]))

    assert exc.value.campo == "rule_json"
    assert exc.value.detalhes[0]["campo"] == "conditions"
    assert db.query(Regra).count() == 0


@pytest.mark.parametrize("acao,valida", [
    ({"relay_ids": [7], "slave_mac_address": SLAVE_MAC}, True),
    ({"relay_ids": [8], "slave_mac_address": SLAVE_MAC}, False),
    ({"relay_ids": [15]}, True),
    ({"relay_ids": [16]}, False),
])
def test_faixa_de_rele_depende_do_alvo(db, master, acao, valida):
    if valida:
        assert regras.salvar_regra(db, _regra(actions=[acao])).rule_json["actions"][0]["relay_ids"] == acao["relay_ids"]
    else:
        with pytest.raises(ErroValidacao) as exc:
            regras.salvar_regra(db, _regra(actions=[acao]))
        assert exc.value.detalhes[0]["campo"] == "relay_ids"


def test_script_invalido_traz_detalhes(db, master):
    with pytest.raises(ErroValidacao) as exc:
        regras.salvar_regra(db, _regra(script=_script(_acao(16))))

    assert exc.value.campo == "script.instructions"
    assert exc.value.detalhes[0]["campo"] == "relay_number"
    assert db.query(Regra).count() == 0


def test_condicao_composta_invalida(db, master):
    with pytest.raises(ErroValidacao) as exc:
        regras.salvar_regra(db, _regra(
            conditions=[{"sensor": "water_level", "operator": ">", "value": "baixo"}],
            actions=[{"relay_ids": [1]}],
        ))
    assert exc.value.detalhes[0]["campo"] == "condition.operator"


def test_edicao_substitui_rule_json(db, master):
    regra = regras.salvar_regra(db, _regra(actions=[{"relay_ids": [1]}]))
    editada = regras.salvar_regra(db, _regra(rule_name="Renomeada", script=_script(_acao(7))), regra_id=regra.id)

    assert editada.id == regra.id
    assert editada.rule_id == regra.rule_id
    assert editada.rule_name == "Renomeada"
    assert "actions" not in editada.rule_json
    assert db.query(Regra).count() == 1


def test_edicao_de_regra_inexistente(db, master):
    with pytest.raises(ErroPrecondicao) as exc:
        regras.salvar_regra(db, _regra(actions=[{"relay_ids": [1]}]), regra_id=uuid.uuid4())
    assert exc.value.status_code == 404


def test_criacao_com_rule_id_existente_e_idempotente(db, master):
    primeira = regras.salvar_regra(db, _regra(rule_id="RULE_ph_alto", actions=[{"relay_ids": [1]}]))
    segunda = regras.salvar_regra(db, _regra(rule_id="RULE_ph_alto", priority=80, actions=[{"relay_ids": [2]}]))

    assert segunda.id == primeira.id
    assert segunda.priority == 80
    assert db.query(Regra).count() == 1


def test_evento_encadeado_para_si_mesma(db, master):
    with pytest.raises(ErroValidacao) as exc:
        regras.salvar_regra(db, _regra(
            rule_id="RULE_a",
            script=_script(_acao(1), chained_events=[{"target_rule_id": "RULE_a"}]),
        ))
    assert exc.value.campo == "script.chained_events"


def test_ciclo_de_eventos_encadeados(db, master):
    regras.salvar_regra(db, _regra(
        rule_id="RULE_a", script=_script(_acao(1), chained_events=[{"target_rule_id": "RULE_b"}]),
    ))
    regras.salvar_regra(db, _regra(
        rule_id="RULE_b", script=_script(_acao(2), chained_events=[{"target_rule_id": "RULE_c"}]),
    ))

    with pytest.raises(ErroValidacao):
        regras.salvar_regra(db, _regra(
            rule_id="RULE_c", script=_script(_acao(3), chained_events=[{"target_rule_id": "RULE_a"}]),
        ))

    # cadeia sem volta é aceita
    regras.salvar_regra(db, _regra(
        rule_id="RULE_c",
        script=_script(_acao(3), chained_events=[{"target_rule_id": "RULE_d", "trigger_on": "failure"}]),
    ))


def test_listar_alternar_excluir(db, master):
    baixa = regras.salvar_regra(db, _regra(rule_name="Baixa", priority=10, actions=[{"relay_ids": [1]}]))
    alta = regras.salvar_regra(db, _regra(rule_name="Alta", priority=90, actions=[{"relay_ids": [2]}]))

    assert [r.id for r in regras.listar_regras(db, MASTER_ID)] == [alta.id, baixa.id]

    assert regras.alternar_regra(db, baixa.id, False).enabled is False

    regras.excluir_regra(db, alta.id)
    assert [r.id for r in regras.listar_regras(db, MASTER_ID)] == [baixa.id]
    with pytest.raises(ErroPrecondicao):
        regras.obter_regra(db, alta.id)


def test_executar_script_um_comando_por_rele(db, master):
    regra = regras.salvar_regra(db, _regra(
        priority=65,
        script=_script(
            _acao(1, "on", duration_seconds=30),
            {
                "type": "if",
                "condition": {"sensor": "ec", "operator": ">", "value": 1800},
                "then": [{"type": "relay_action", "target": "slave", "slave_mac": SLAVE_MAC,
                          "relay_number": 2, "action": "on"}],
            },
            _acao(1, "off"),
        ),
    ))

    emitidos = regras.executar_regra(db, regra.id)

    assert len(emitidos) == 2
    por_alvo = {(c.slave_mac_address, c.relay_number): c for c in emitidos}
    assert por_alvo[(None, 1)].action == "off"
    assert por_alvo[(SLAVE_MAC, 2)].action == "on"
    for comando in emitidos:
        assert comando.command_type == "rule"
        assert comando.priority == 65
        assert comando.rule_id == regra.rule_id


def test_executar_composta(db, master):
    regra = regras.salvar_regra(db, _regra(actions=[{"relay_ids": [3, 4], "duration": 45}]))

    emitidos = regras.executar_regra(db, regra.id)

    assert sorted(c.relay_number for c in emitidos) == [3, 4]
    assert all(c.duration_seconds == 45 and c.action == "on" for c in emitidos)
