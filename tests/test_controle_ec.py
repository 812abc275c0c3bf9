from datetime import datetime, timedelta

import pytest

from conftest import MASTER_ID
from hidrocontrole.core.erros import ErroPrecondicao, ErroValidacao
from hidrocontrole.models.comando import ComandoRele
from hidrocontrole.models.config_ec import ConfigEC
from hidrocontrole.schemas.config_ec import ConfigECIn, NutrienteConfig
from hidrocontrole.services import controle_ec, leituras


def _entrada(**kwargs):
    base = dict(
        device_id=MASTER_ID,
        base_dose=1525,
        flow_rate=1.0,
        volume=10,
        ec_setpoint=1500,
        interval_between_checks_seconds=300,
        nutrients=[
            NutrienteConfig(name="Grow", relay_number=0, ml_per_liter=2),
            NutrienteConfig(name="Micro", relay_number=1, ml_per_liter=2),
            NutrienteConfig(name="Bloom", relay_number=2, ml_per_liter=1),
            NutrienteConfig(name="CalMag", relay_number=6, ml_per_liter=0),
        ],
    )
    base.update(kwargs)
    return ConfigECIn(**base)


def test_config_padrao_nao_e_gravada(db):
    config = controle_ec.obter_config(db, MASTER_ID)

    assert config.base_dose == 0
    assert config.kp == 1.0
    assert config.auto_enabled is False
    assert config.nutrients == []
    assert db.query(ConfigEC).count() == 0


def test_salvar_e_ler(db):
    controle_ec.salvar_config(db, _entrada())
    salva = controle_ec.salvar_config(db, _entrada(ec_setpoint=1400))

    assert salva.ec_setpoint == 1400
    assert salva.kp == 1.0
    assert db.query(ConfigEC).count() == 1
    lida = controle_ec.obter_config(db, MASTER_ID)
    assert [n.name for n in lida.nutrients] == ["Grow", "Micro", "Bloom", "CalMag"]


@pytest.mark.parametrize("kwargs,campo", [
    ({"flow_rate": -1}, "flow_rate"),
    ({"nutrients": [NutrienteConfig(name="Grow", relay_number=16, ml_per_liter=2)]}, "nutrients[0].relay_number"),
    ({"nutrients": [NutrienteConfig(name=" ", relay_number=1, ml_per_liter=2)]}, "nutrients[0].name"),
])
def test_config_invalida(db, kwargs, campo):
    with pytest.raises(ErroValidacao) as exc:
        controle_ec.salvar_config(db, _entrada(**kwargs))
    assert exc.value.campo == campo


def test_ativar_exige_config_salva(db):
    with pytest.raises(ErroPrecondicao) as exc:
        controle_ec.ativar_auto(db, MASTER_ID)
    assert exc.value.status_code == 404
    assert db.query(ConfigEC).count() == 0


def test_ativar_e_desativar(db):
    controle_ec.salvar_config(db, _entrada())
    assert controle_ec.ativar_auto(db, MASTER_ID).auto_enabled is True
    assert controle_ec.desativar_auto(db, MASTER_ID).auto_enabled is False


def test_dosar_emite_um_comando_peristaltico_por_dose(db, master):
    controle_ec.salvar_config(db, _entrada())

    resultado = controle_ec.dosar(db, MASTER_ID, ec_medido=1650)

    assert resultado["executada"] is True
    comandos = db.query(ComandoRele).order_by(ComandoRele.id).all()
    assert [c.id for c in comandos] == resultado["command_ids"]
    assert [(c.relay_number, c.duration_seconds) for c in comandos] == [(0, 1.97), (1, 1.97), (2, 0.98)]
    assert all(c.command_type == "peristaltic" and c.priority == 80 for c in comandos)
    assert db.query(ConfigEC).one().ultima_dosagem_em is not None


def test_intervalo_minimo_entre_dosagens(db, master):
    controle_ec.salvar_config(db, _entrada())
    agora = datetime(2025, 1, 1, 12, 0, 0)
    controle_ec.dosar(db, MASTER_ID, ec_medido=1650, agora=agora)

    cedo = controle_ec.dosar(db, MASTER_ID, ec_medido=1650, agora=agora + timedelta(seconds=60))
    assert cedo["executada"] is False
    assert "240s" in cedo["motivo"]

    forcada = controle_ec.dosar(db, MASTER_ID, ec_medido=1650, forcar=True, agora=agora + timedelta(seconds=60))
    assert forcada["executada"] is True

    depois = controle_ec.dosar(db, MASTER_ID, ec_medido=1650, agora=agora + timedelta(seconds=400))
    assert depois["executada"] is True
    assert db.query(ComandoRele).count() == 9


def test_dosar_usa_ultima_leitura(db, master):
    controle_ec.salvar_config(db, _entrada())
    leituras.registrar_leitura(db, MASTER_ID, {"ec": 1650.0, "ph": 6.0})
    leituras.registrar_leitura(db, MASTER_ID, {"water_level": "medio"})

    resultado = controle_ec.dosar(db, MASTER_ID)

    assert resultado["executada"] is True
    assert resultado["plano"]["erro"] == 150


def test_dosar_sem_leitura(db, master):
    controle_ec.salvar_config(db, _entrada())
    with pytest.raises(ErroPrecondicao) as exc:
        controle_ec.dosar(db, MASTER_ID)
    assert exc.value.codigo == "sem_leitura_ec"


def test_dosar_sem_correcao(db, master):
    controle_ec.salvar_config(db, _entrada())
    resultado = controle_ec.dosar(db, MASTER_ID, ec_medido=1500)

    assert resultado["executada"] is False
    assert db.query(ComandoRele).count() == 0
    assert db.query(ConfigEC).one().ultima_dosagem_em is None


def test_correcao_minima_nao_liga_bombas_sem_tempo(db, master):
    controle_ec.salvar_config(db, _entrada())
    resultado = controle_ec.dosar(db, MASTER_ID, ec_medido=1500.1, forcar=True)

    assert resultado["executada"] is False
    assert db.query(ComandoRele).count() == 0


def test_comandos_da_dosagem_sempre_tem_duracao(db, master):
    controle_ec.salvar_config(db, _entrada(nutrients=[
        NutrienteConfig(name="Grow", relay_number=0, ml_per_liter=2),
        NutrienteConfig(name="Traço", relay_number=4, ml_per_liter=0.001),
    ]))
    resultado = controle_ec.dosar(db, MASTER_ID, ec_medido=1650)

    comandos = db.query(ComandoRele).all()
    assert [c.relay_number for c in comandos] == [0]
    assert len(resultado["command_ids"]) == 1
    assert all(c.duration_seconds for c in comandos)


def test_acionar_nutriente(db, master):
    controle_ec.salvar_config(db, _entrada())

    grow = controle_ec.acionar_nutriente(db, MASTER_ID, 0)
    calmag = controle_ec.acionar_nutriente(db, MASTER_ID, 6)

    assert grow.duration_seconds == 20
    assert grow.rule_name == "Dosagem: Grow"
    assert grow.command_type == "manual"
    assert calmag.duration_seconds == 10
    assert calmag.rule_name == "Ativação: CalMag"


def test_acionar_nutriente_inexistente(db, master):
    controle_ec.salvar_config(db, _entrada())
    with pytest.raises(ErroPrecondicao) as exc:
        controle_ec.acionar_nutriente(db, MASTER_ID, 9)
    assert exc.value.codigo == "nutriente_nao_encontrado"
