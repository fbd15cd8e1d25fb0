"""
Alarmas: envío de notificaciones a webhooks (Zulip u otros compatibles)

El formato del mensaje es "[lbPolicy - <identificador>] [:<tipo>:] <mensaje>".
Un fallo al notificar se registra pero nunca interrumpe la conmutación.
"""

import logging
import re
from typing import List, Optional, Protocol

import requests

from glbtool.config.models import AlarmConfig, GlbConfig


logger = logging.getLogger(__name__)

SCRIPT_NAME = "lbPolicy"

# Tipos de alarma usados por la conmutación y el monitor
GREEN = "green_circle"
YELLOW = "yellow_circle"
RED = "red_circle"
SWITCH = "switch"


class AlarmSink(Protocol):
    """Protocolo: quien entrega una alarma"""
    def send(self, message: str, stream: str = "", topic: str = "", custom_stream: bool = False) -> None:
        ...


def with_query_param(url: str, key: str, value: str) -> str:
    """Reemplaza o agrega &key=value en la URL del webhook"""
    pattern = re.compile(rf"&{key}=[^&]*")
    if pattern.search(url):
        return pattern.sub(lambda _: f"&{key}={value}", url)
    return f"{url}&{key}={value}"


class WebhookAlarm:
    """Envía alarmas por POST {"text": mensaje} a cada webhook configurado"""

    def __init__(self, config: AlarmConfig, session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.config = config
        self.session = session or requests.Session()
        self.timeout = timeout

    def send(self, message: str, stream: str = "", topic: str = "", custom_stream: bool = False) -> None:
        if not self.config.enabled:
            logger.debug("Alarmas deshabilitadas, se omite: %s", message)
            return

        for webhook_url in self.config.webhook_urls:
            url = webhook_url
            if stream:
                url = with_query_param(url, "stream", stream)
            if topic:
                url = with_query_param(url, "topic", topic)

            try:
                response = self.session.post(url, json={"text": message}, timeout=self.timeout)
                if response.status_code >= 300:
                    logger.error("Webhook %s devolvió %s: %s", webhook_url, response.status_code, response.text[:200])
                else:
                    logger.debug("Alarma enviada a %s", webhook_url)
            except requests.RequestException as e:
                logger.error("Error enviando alarma a %s: %s", webhook_url, e)

            # Con stream/topic propios solo se usa el primer webhook
            if custom_stream:
                break


class MemoryAlarm:
    """Guarda las alarmas en memoria (modo sin webhooks y tests)"""

    def __init__(self):
        self.messages: List[str] = []

    def send(self, message: str, stream: str = "", topic: str = "", custom_stream: bool = False) -> None:
        logger.info("Alarma: %s", message)
        self.messages.append(message)


def format_alarm(identifier: str, kind: str, message: str) -> str:
    return f"[{SCRIPT_NAME} - {identifier}] [:{kind}:] {message}"


def alarm_custom(sink: AlarmSink, config: GlbConfig, kind: str, message: str) -> None:
    """
    Envía una alarma con el formato de lbPolicy y el stream/topic de la configuración

    Args:
        sink: Destino de la alarma
        config: Configuración (identificador y sección alarm)
        kind: green_circle | yellow_circle | red_circle | switch
        message: Texto de la alarma
    """
    sink.send(
        format_alarm(config.identifier, kind, message),
        config.alarm.stream,
        config.alarm.topic,
        config.alarm.custom_stream,
    )
