import pytest

from hidrocontrole.schemas.config_ec import ConfigECIn, NutrienteConfig
from hidrocontrole.services.dosagem import calcular_dosagem, duracao_acionamento_manual


def _config(**kwargs):
    base = dict(
        device_id="ESP32_HIDRO_A1B2C3",
        base_dose=1525,
        flow_rate=1.0,
        volume=10,
        ec_setpoint=1500,
        nutrients=[
            NutrienteConfig(name="Grow", relay_number=0, ml_per_liter=2),
            NutrienteConfig(name="Micro", relay_number=1, ml_per_liter=2),
            NutrienteConfig(name="Bloom", relay_number=2, ml_per_liter=1),
        ],
    )
    base.update(kwargs)
    return ConfigECIn(**base)


def test_exemplo_de_referencia():
    plano = calcular_dosagem(_config(), 1650)

    assert plano.total_ml_per_liter == 5
    assert plano.k == 305
    assert plano.erro == 150
    assert plano.volume_total_ml == pytest.approx(4.918, abs=1e-3)

    assert [(d.name, d.relay_number) for d in plano.doses] == [("Grow", 0), ("Micro", 1), ("Bloom", 2)]
    assert [d.dose_ml for d in plano.doses] == [1.97, 1.97, 0.98]
    assert [d.duration_seconds for d in plano.doses] == [1.97, 1.97, 0.98]


def test_erro_usa_valor_absoluto():
    acima = calcular_dosagem(_config(), 1650)
    abaixo = calcular_dosagem(_config(), 1350)
    assert acima == abaixo


def test_funcao_pura():
    assert calcular_dosagem(_config(), 1650) == calcular_dosagem(_config(), 1650)


@pytest.mark.parametrize("kwargs", [
    {"base_dose": 0},
    {"base_dose": -10},
    {"flow_rate": 0},
    {"volume": 0},
    {"volume": -1},
    {"nutrients": []},
    {"nutrients": [NutrienteConfig(name="Grow", relay_number=0, ml_per_liter=0)]},
])
def test_config_insuficiente_retorna_none(kwargs):
    assert calcular_dosagem(_config(**kwargs), 1650) is None


def test_correcao_desprezivel_retorna_none():
    assert calcular_dosagem(_config(), 1500) is None
    assert calcular_dosagem(_config(), 1500.0001) is None


def test_nutriente_sem_concentracao_fica_fora_do_plano():
    nutrientes = [
        NutrienteConfig(name="Grow", relay_number=0, ml_per_liter=3),
        NutrienteConfig(name="CalMag", relay_number=5, ml_per_liter=0),
    ]
    plano = calcular_dosagem(_config(nutrients=nutrientes), 1700)
    assert [d.relay_number for d in plano.doses] == [0]


def test_duracoes_somam_o_volume_total():
    config = _config(flow_rate=2.5, volume=80)
    plano = calcular_dosagem(config, 1900)

    total_emitido = sum(d.duration_seconds * config.flow_rate for d in plano.doses)
    # cada dose arredondada em 2 casas: tolerância proporcional ao número de doses
    assert total_emitido == pytest.approx(plano.volume_total_ml, abs=0.01 * len(plano.doses) * config.flow_rate)


def test_como_dict():
    plano = calcular_dosagem(_config(), 1650).como_dict()
    assert plano["doses"][2] == {"name": "Bloom", "relay_number": 2, "dose_ml": 0.98, "duration_seconds": 0.98}


def test_acionamento_manual():
    grow = NutrienteConfig(name="Grow", relay_number=0, ml_per_liter=2)
    assert duracao_acionamento_manual(grow, volume=10, flow_rate=1.0) == 20
    assert duracao_acionamento_manual(grow, volume=10, flow_rate=3.0) == 7


def test_acionamento_manual_sem_concentracao_usa_padrao():
    calmag = NutrienteConfig(name="CalMag", relay_number=5, ml_per_liter=0)
    assert duracao_acionamento_manual(calmag, volume=0, flow_rate=0) == 10


def test_acionamento_manual_sem_vazao():
    grow = NutrienteConfig(name="Grow", relay_number=0, ml_per_liter=2)
    assert duracao_acionamento_manual(grow, volume=10, flow_rate=0) is None


def test_correcao_que_arredonda_para_zero_segundos_retorna_none():
    # 0.0033 ml no total: acima do mínimo, mas nenhuma dose chega a 0.01 s
    assert calcular_dosagem(_config(), 1500.1) is None


def test_dose_que_arredonda_para_zero_fica_fora_do_plano():
    nutrientes = [
        NutrienteConfig(name="Grow", relay_number=0, ml_per_liter=2),
        NutrienteConfig(name="Traço", relay_number=4, ml_per_liter=0.001),
    ]
    plano = calcular_dosagem(_config(nutrients=nutrientes), 1650)

    assert [d.relay_number for d in plano.doses] == [0]
    assert all(d.duration_seconds > 0 for d in plano.doses)
