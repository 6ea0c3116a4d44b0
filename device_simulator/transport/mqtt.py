"""MQTT transport - one aiomqtt client per simulated device.

Devices authenticate with token auth: the username is the literal
``use-token-auth`` and the password is the shared device token that the
provisioning step registers for every device.
"""

from __future__ import annotations

import logging
import ssl
from typing import TYPE_CHECKING

import aiomqtt

from device_simulator.errors import DeviceConnectionError, PublishError
from device_simulator.transport.base import Connection, Transport

if TYPE_CHECKING:
    from device_simulator.config import PlatformConfig, ReplayConfig

__all__ = ["TOKEN_AUTH_USERNAME", "MqttConnection", "MqttTransport"]

logger = logging.getLogger("device_simulator.transport.mqtt")

TOKEN_AUTH_USERNAME = "use-token-auth"


class MqttConnection(Connection):
    """A connected :class:`aiomqtt.Client` bound to one device."""

    def __init__(self, client_id: str, client: aiomqtt.Client, *, qos: int = 1) -> None:
        super().__init__(client_id)
        self._client = client
        self._qos = qos
        self._closing = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def publish(self, topic: str, payload: bytes) -> None:
        try:
            await self._client.publish(topic, payload=payload, qos=self._qos)
        except aiomqtt.MqttError as exc:
            raise PublishError(self.client_id, topic, exc) from exc

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        try:
            await self._client.__aexit__(None, None, None)
        except aiomqtt.MqttError as exc:
            # Already lost; __aexit__ re-raises the error that caused it.
            logger.warning("Connection %s closed with error: %s", self.client_id, exc)

    async def wait_closed(self) -> None:
        # No subscriptions, so the message iterator only ends by raising
        # MqttError once the client disconnects.
        try:
            async for _message in self._client.messages:
                pass
        except aiomqtt.MqttError as exc:
            if not self._closing:
                logger.warning("Connection %s lost: %s", self.client_id, exc)
        finally:
            self._closed = True


class MqttTransport(Transport):
    """Connect devices to an MQTT broker over TLS.

    Parameters:
        hostname: Broker host, e.g. ``"myorg.messaging.internetofthings.ibmcloud.com"``.
        port: Broker port (8883 for TLS).
        password: Shared device token.
        username: MQTT username (token auth by default).
        tls: Wrap the connection in TLS.
        verify_tls: Verify the broker certificate and host name.
        qos: QoS used for every publish.  ``1`` waits for the broker's
            PUBACK, so a returned publish means a confirmed delivery.
        keepalive: MQTT keepalive in seconds.
        connect_timeout_s: Timeout for the handshake and broker replies.
    """

    def __init__(
        self,
        *,
        hostname: str,
        port: int = 8883,
        password: str,
        username: str = TOKEN_AUTH_USERNAME,
        tls: bool = True,
        verify_tls: bool = False,
        qos: int = 1,
        keepalive: int = 60,
        connect_timeout_s: float | None = 30.0,
    ) -> None:
        self._hostname = hostname
        self._port = port
        self._username = username
        self._password = password
        self._tls = tls
        self._verify_tls = verify_tls
        self._qos = qos
        self._keepalive = keepalive
        self._connect_timeout_s = connect_timeout_s

    @classmethod
    def for_platform(cls, platform: PlatformConfig, replay: ReplayConfig) -> MqttTransport:
        """Build a transport from the ``platform`` and ``replay`` config sections."""
        return cls(
            hostname=platform.mqtt_host,
            port=platform.mqtt_port,
            password=platform.device_token,
            verify_tls=platform.verify_tls,
            qos=replay.qos,
            connect_timeout_s=replay.connect_timeout_s,
        )

    def _tls_context(self) -> ssl.SSLContext | None:
        if not self._tls:
            return None
        context = ssl.create_default_context()
        if not self._verify_tls:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    async def open(self, client_id: str) -> MqttConnection:
        client = aiomqtt.Client(
            self._hostname,
            self._port,
            identifier=client_id,
            username=self._username,
            password=self._password,
            keepalive=self._keepalive,
            timeout=self._connect_timeout_s,
            tls_context=self._tls_context(),
            tls_insecure=(not self._verify_tls) if self._tls else None,
        )
        try:
            await client.__aenter__()
        except aiomqtt.MqttError as exc:
            raise DeviceConnectionError(client_id, exc) from exc

        logger.debug("MQTT session %s open on %s:%d", client_id, self._hostname, self._port)
        return MqttConnection(client_id, client, qos=self._qos)
