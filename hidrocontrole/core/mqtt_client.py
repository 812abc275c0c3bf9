import json
import logging
from typing import Optional

import paho.mqtt.client as mqtt

from hidrocontrole.core.config import settings

logger = logging.getLogger(__name__)

_publicador: Optional[mqtt.Client] = None


def _obter_publicador() -> mqtt.Client:
    """
    Mantém um único client de publicação, conectado sob demanda.
    """
    global _publicador
    if _publicador is None:
        _publicador = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id="HIDROCONTROLE-PUBLICADOR")
        if settings.MQTT_USERNAME:
            _publicador.username_pw_set(settings.MQTT_USERNAME, settings.MQTT_PASSWORD or "")

    if not _publicador.is_connected():
        _publicador.connect(settings.MQTT_BROKER_HOST, settings.MQTT_BROKER_PORT, 60)
        _publicador.loop_start()
    return _publicador


def topico_dispositivo(device_id: str, sufixo: str) -> str:
    return f"{settings.MQTT_TOPIC_ROOT}/{device_id}/{sufixo}"


def publicar_aviso_comando(comando) -> bool:
    """
    Avisa o master que há comando pendente para ele buscar.

    O comando já está persistido quando isto é chamado; o master também
    faz polling dos pendentes, então falha aqui só atrasa a execução.
    """
    if not settings.MQTT_ENABLED:
        return False

    payload = json.dumps({
        "command_id": comando.id,
        "relay_number": comando.relay_number,
        "action": comando.action,
        "slave_mac_address": comando.slave_mac_address,
        "priority": comando.priority,
    })
    try:
        _obter_publicador().publish(topico_dispositivo(comando.device_id, "comando"), payload, qos=1)
    except (OSError, ValueError) as e:
        logger.warning(f"Aviso MQTT do comando {comando.id} não publicado: {e}")
        return False
    return True
