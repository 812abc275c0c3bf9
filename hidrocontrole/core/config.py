from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./hidrocontrole.db"

    MQTT_ENABLED: bool = True
    MQTT_BROKER_HOST: str = "broker.hivemq.com"
    MQTT_BROKER_PORT: int = 1883
    MQTT_TOPIC_ROOT: str = "hidrocontrole"
    MQTT_USERNAME: Optional[str] = None
    MQTT_PASSWORD: Optional[str] = None

    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # Intervalos (segundos) dos pollers de cada sessão de dispositivo
    POLL_RELES_S: float = 10.0
    POLL_SLAVES_S: float = 30.0
    POLL_ACKS_S: float = 5.0
    POLL_EC_S: float = 10.0

    # Janela "acabou de salvar": refresh da config EC é pulado nesse intervalo
    JANELA_SALVO_S: float = 2.0

    class Config:
        env_file = ".env"

settings = Settings()
