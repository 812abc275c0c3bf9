import os

# Antes de qualquer import do pacote: settings é lido na importação
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["MQTT_ENABLED"] = "false"

import pytest

from hidrocontrole.db.init_db import drop_db, init_db
from hidrocontrole.db.session import SessionLocal
from hidrocontrole.schemas.dispositivo import DispositivoIn
from hidrocontrole.services.dispositivos import registrar_dispositivo

MASTER_ID = "ESP32_HIDRO_A1B2C3"
MASTER_MAC = "24:6F:28:A1:B2:C3"
SLAVE_MAC = "AA:BB:CC:DD:EE:01"


@pytest.fixture(autouse=True)
def banco():
    drop_db()
    init_db()
    yield


@pytest.fixture
def db():
    sessao = SessionLocal()
    try:
        yield sessao
    finally:
        sessao.close()


@pytest.fixture
def master(db):
    return registrar_dispositivo(db, DispositivoIn(
        device_id=MASTER_ID,
        device_name="Bancada 1",
        device_type="ESP32_HYDROPONIC",
        mac_address=MASTER_MAC,
        user_email="produtor@example.com",
        is_online=True,
    ))


@pytest.fixture
def slave(db, master):
    return registrar_dispositivo(db, DispositivoIn(
        device_id="ESP32_SLAVE_AA_BB_CC_DD_EE_01",
        device_name="Bombas",
        device_type="ESP32_SLAVE",
        mac_address=SLAVE_MAC,
        master_device_id=MASTER_ID,
    ))
