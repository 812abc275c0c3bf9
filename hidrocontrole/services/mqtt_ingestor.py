import json
import logging
import threading
from typing import Optional

import paho.mqtt.client as mqtt
from pydantic import ValidationError

from hidrocontrole.core.config import settings
from hidrocontrole.core.erros import ErroHidro
from hidrocontrole.db.session import SessionLocal
from hidrocontrole.schemas.dispositivo import EstadoReleIn
from hidrocontrole.services import comandos, leituras, reles

logger = logging.getLogger(__name__)

# ---- Config vindo do settings ----
MQTT_BROKER_HOST = settings.MQTT_BROKER_HOST
MQTT_BROKER_PORT = settings.MQTT_BROKER_PORT
MQTT_TOPIC_ROOT = settings.MQTT_TOPIC_ROOT
MQTT_USERNAME = settings.MQTT_USERNAME
MQTT_PASSWORD = settings.MQTT_PASSWORD

SUFIXOS = ("leituras", "reles", "ack")

_mqtt_client: Optional[mqtt.Client] = None


def _parse_topic(topic: str):
    """
    'hidrocontrole/ESP32_MASTER_01/leituras' -> ('ESP32_MASTER_01', 'leituras')
    Tópicos fora do padrão -> (None, None)
    """
    partes = topic.split("/")
    if len(partes) != 3 or partes[0] != MQTT_TOPIC_ROOT or partes[2] not in SUFIXOS:
        return None, None
    return partes[1], partes[2]


def processar_mensagem(topic: str, payload_raw: str) -> bool:
    """
    Grava o que o master publicou. Retorna False para mensagens ignoradas.

    Payloads esperados:
      leituras: {"ec": 1650.0, "ph": 6.1, ...}
      reles:    [{"relay_number": 0, "state": true, ...}, ...]
      ack:      {"command_id": 12, "status": "completed", "error_message": null}
    """
    device_id, sufixo = _parse_topic(topic)
    if not device_id:
        return False

    try:
        dados = json.loads(payload_raw)
    except json.JSONDecodeError:
        logger.warning(f"Payload não é JSON em {topic}: {payload_raw[:200]}")
        return False

    db = SessionLocal()
    try:
        if sufixo == "leituras":
            if not isinstance(dados, dict):
                logger.warning(f"Leitura inválida em {topic}: esperado objeto")
                return False
            leituras.registrar_leitura(db, device_id, dados)

        elif sufixo == "reles":
            itens = dados.get("relays", []) if isinstance(dados, dict) else dados
            if not isinstance(itens, list):
                logger.warning(f"Estados de relé inválidos em {topic}: esperado lista")
                return False
            estados = [EstadoReleIn(**item) for item in itens]
            reles.registrar_estados(db, device_id, estados)

        elif sufixo == "ack":
            if not isinstance(dados, dict):
                logger.warning(f"ACK inválido em {topic}: esperado objeto")
                return False
            comandos.atualizar_status(
                db,
                int(dados["command_id"]),
                dados.get("status", "completed"),
                dados.get("error_message"),
                master_device_id=device_id,
            )
        return True

    except (ValidationError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Mensagem malformada em {topic}: {e}")
        return False
    except ErroHidro as e:
        logger.error(f"Erro ao processar {topic}: {e.mensagem} ({e.codigo})")
        return False
    finally:
        db.close()


# ========= Callbacks MQTT =========

def _on_connect(client: mqtt.Client, userdata, flags, reason_code, properties):
    if reason_code.is_failure:
        logger.error(f"Falha na conexão com o broker: {reason_code}")
        return

    logger.info("Conectado ao broker.")
    for sufixo in SUFIXOS:
        topic = f"{MQTT_TOPIC_ROOT}/+/{sufixo}"
        client.subscribe(topic, qos=1)
        logger.info(f"Assinando: {topic}")


def _on_message(client: mqtt.Client, userdata, msg: mqtt.MQTTMessage):
    processar_mensagem(msg.topic, msg.payload.decode(errors="ignore").strip())


# ========= Inicialização do ingestor =========

def start_mqtt_ingestor():
    """
    Cria o cliente MQTT, conecta ao broker e inicia o loop em uma thread daemon.
    Deve ser chamado no evento de startup do FastAPI.
    """
    global _mqtt_client
    if _mqtt_client is not None:
        return

    client = mqtt.Client(
        mqtt.CallbackAPIVersion.VERSION2,
        client_id="HIDROCONTROLE-INGESTOR",
        clean_session=True,
    )

    if MQTT_USERNAME:
        client.username_pw_set(MQTT_USERNAME, MQTT_PASSWORD or "")

    client.on_connect = _on_connect
    client.on_message = _on_message

    logger.info(f"Conectando em {MQTT_BROKER_HOST}:{MQTT_BROKER_PORT} ...")
    client.connect(MQTT_BROKER_HOST, MQTT_BROKER_PORT, keepalive=60)

    thread = threading.Thread(target=client.loop_forever, daemon=True)
    thread.start()

    _mqtt_client = client
    logger.info("Ingestor MQTT iniciado em thread separada.")


def stop_mqtt_ingestor():
    global _mqtt_client
    if _mqtt_client is None:
        return
    _mqtt_client.disconnect()
    _mqtt_client = None
