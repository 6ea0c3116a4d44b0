"""Provisioning client - creates and deletes devices and device types
through the platform's REST API.

Every call is best effort: failures are logged and returned as
:class:`ProvisioningError` objects, never raised, so a partially failed
rebuild still lets the simulation go ahead.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from types import TracebackType
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from device_simulator.errors import ProvisioningError
from device_simulator.models import DeviceIdentity

if TYPE_CHECKING:
    from device_simulator.config import PlatformConfig
    from device_simulator.timeline import Workload

__all__ = ["ProvisioningClient"]

logger = logging.getLogger("device_simulator.provisioning")


class ProvisioningClient:
    """Async REST client for device and device-type management.

    Use as an async context manager::

        async with ProvisioningClient.for_platform(settings.platform) as client:
            failures = await client.rebuild_all(workload)

    Parameters:
        base_url: API root, e.g. ``"https://myorg.internetofthings.ibmcloud.com/api/v0002"``.
        api_key / api_token: Basic-auth credentials.
        device_token: Auth token registered for every created device.
        verify_tls: Verify the server certificate.
        timeout_s: Per-request timeout in seconds.
        transport: Optional ``httpx`` transport (e.g. ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        api_token: str,
        *,
        device_token: str,
        verify_tls: bool = False,
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth(api_key, api_token)
        self._device_token = device_token
        self._verify_tls = verify_tls
        self._timeout = timeout_s
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def for_platform(cls, platform: PlatformConfig, **kwargs: Any) -> ProvisioningClient:
        return cls(
            platform.api_base_url,
            platform.api_key,
            platform.api_token,
            device_token=platform.device_token,
            verify_tls=platform.verify_tls,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            auth=self._auth,
            verify=self._verify_tls,
            timeout=httpx.Timeout(self._timeout),
            transport=self._transport,
        )
        logger.debug("ProvisioningClient ready - target: %s", self._base_url)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> ProvisioningClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Devices (bulk endpoints - one request for all devices)
    # ------------------------------------------------------------------

    async def delete_devices(self, devices: Sequence[DeviceIdentity]) -> list[ProvisioningError]:
        if not devices:
            return []
        body = [{"typeId": device.type, "deviceId": device.id} for device in devices]
        failure = await self._send("deleting devices", f"({len(devices)} devices)", "POST", "/bulk/devices/remove", body)
        return _collect([failure])

    async def create_devices(self, devices: Sequence[DeviceIdentity]) -> list[ProvisioningError]:
        if not devices:
            return []
        body = [
            {
                "typeId": device.type,
                "deviceId": device.id,
                "metadata": {},
                "authToken": self._device_token,
            }
            for device in devices
        ]
        failure = await self._send("creating devices", f"({len(devices)} devices)", "POST", "/bulk/devices/add", body)
        return _collect([failure])

    # ------------------------------------------------------------------
    # Device types (one request per type, issued concurrently)
    # ------------------------------------------------------------------

    async def delete_device_types(self, device_types: Sequence[str]) -> list[ProvisioningError]:
        results = await asyncio.gather(
            *(
                self._send(
                    "deleting device type",
                    device_type,
                    "DELETE",
                    f"/device/types/{quote(device_type, safe='')}",
                )
                for device_type in device_types
            )
        )
        return _collect(results)

    async def create_device_types(self, device_types: Sequence[str]) -> list[ProvisioningError]:
        results = await asyncio.gather(
            *(
                self._send(
                    "creating device type",
                    device_type,
                    "POST",
                    "/device/types",
                    {
                        "id": device_type,
                        "description": device_type,
                        "classId": "Device",
                        "deviceInfo": {},
                        "metadata": {},
                    },
                )
                for device_type in device_types
            )
        )
        return _collect(results)

    # ------------------------------------------------------------------
    # Workload helpers
    # ------------------------------------------------------------------

    async def delete_all(self, workload: Workload) -> list[ProvisioningError]:
        """Delete the workload's devices, then its device types."""
        failures = await self.delete_devices(workload.devices)
        failures += await self.delete_device_types(workload.device_types)
        return failures

    async def rebuild_all(self, workload: Workload) -> list[ProvisioningError]:
        """Delete, then recreate the workload's device types and devices."""
        failures = await self.delete_all(workload)
        failures += await self.create_device_types(workload.device_types)
        failures += await self.create_devices(workload.devices)
        return failures

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _send(
        self,
        operation: str,
        target: str,
        method: str,
        url: str,
        body: Any = None,
    ) -> ProvisioningError | None:
        if self._client is None:
            raise RuntimeError("ProvisioningClient is not connected")

        try:
            resp = await self._client.request(method, url, json=body)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            error = ProvisioningError(operation, target, exc.response.text, status_code=exc.response.status_code)
            logger.error("%s", error)
            return error
        except httpx.HTTPError as exc:
            error = ProvisioningError(operation, target, exc)
            logger.error("%s", error)
            return error

        logger.info("%s %s succeeded (HTTP %d)", operation.capitalize(), target, resp.status_code)
        logger.debug("%s %s%s response: %s", method, self._base_url, url, resp.text)
        return None


def _collect(results: Sequence[ProvisioningError | None]) -> list[ProvisioningError]:
    return [failure for failure in results if failure is not None]
