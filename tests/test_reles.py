import pytest

from conftest import MASTER_ID, SLAVE_MAC
from hidrocontrole.core.erros import ErroValidacao
from hidrocontrole.models.nome_rele import NomeRele
from hidrocontrole.schemas.dispositivo import EstadoReleIn
from hidrocontrole.services import reles


def test_renomear_rele_do_master(db, master):
    nome = reles.renomear_rele(db, MASTER_ID, 3, "  Bomba principal ")

    assert nome["chave"] == "master-3"
    assert nome["relay_name"] == "Bomba principal"
    assert reles.nomes_reles(db, MASTER_ID) == {"master-3": "Bomba principal"}


def test_renomear_de_novo_atualiza(db, master):
    reles.renomear_rele(db, MASTER_ID, 3, "Bomba")
    reles.renomear_rele(db, MASTER_ID, 3, "Aerador")

    assert db.query(NomeRele).count() == 1
    assert reles.nomes_reles(db, MASTER_ID) == {"master-3": "Aerador"}


@pytest.mark.parametrize("relay_number,slave_mac,campo", [
    (16, None, "relay_number"),
    (8, SLAVE_MAC, "relay_number"),
    (-1, None, "relay_number"),
])
def test_renomear_fora_da_faixa(db, master, relay_number, slave_mac, campo):
    with pytest.raises(ErroValidacao) as exc:
        reles.renomear_rele(db, MASTER_ID, relay_number, "Bomba", slave_mac)
    assert exc.value.campo == campo
    assert db.query(NomeRele).count() == 0


def test_renomear_sem_nome(db, master):
    with pytest.raises(ErroValidacao) as exc:
        reles.renomear_rele(db, MASTER_ID, 1, "   ")
    assert exc.value.campo == "relay_name"


def test_nome_do_operador_vence_o_reportado(db, master):
    reles.registrar_estados(db, MASTER_ID, [
        EstadoReleIn(relay_number=1, state=True, relay_name="Relay 1"),
        EstadoReleIn(relay_number=2, state=False, relay_name="Relay 2"),
    ])
    reles.renomear_rele(db, MASTER_ID, 1, "Ventilador")

    estados = reles.estados_reles(db, MASTER_ID)
    assert estados["master-1"]["relay_name"] == "Ventilador"
    assert estados["master-2"]["relay_name"] == "Relay 2"


def test_nome_de_rele_de_slave_sem_estado(db, slave):
    reles.renomear_rele(db, MASTER_ID, 6, "Dosadora pH-", SLAVE_MAC)

    relays = reles.descobrir_slaves(db, MASTER_ID)[0]["relays"]
    assert relays[6]["chave"] == f"{SLAVE_MAC}-6"
    assert relays[6]["relay_name"] == "Dosadora pH-"
    assert relays[6]["state"] is False
    assert relays[5]["relay_name"] is None
