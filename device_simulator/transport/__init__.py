"""Device transports for the simulator.

Import any transport you need directly from this package::

    from device_simulator.transport import ConsoleTransport, MqttTransport
"""

from __future__ import annotations

from device_simulator.transport.base import Connection, Transport
from device_simulator.transport.console import ConsoleConnection, ConsoleTransport
from device_simulator.transport.mqtt import MqttConnection, MqttTransport

__all__ = [
    "Connection",
    "ConsoleConnection",
    "ConsoleTransport",
    "MqttConnection",
    "MqttTransport",
    "Transport",
]
