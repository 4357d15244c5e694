"""
vROps Provider -- sizing recommendation samples from Aria Operations.

Uses the suite API (``/suite-api/api``): a token from
``auth/token/acquire`` sent as ``Authorization: vRealizeOpsToken <t>``,
VM lookup by name, then raw stats for the requested keys over the
lookback window. Every refresh cycle is returned as its own sample;
picking the newest is the resolver's job.
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence

import httpx

from ..core.errors import DataUnavailableError, MonitoringError
from ..core.interfaces import MonitoringProvider
from ..core.logging import get_logger
from ..core.models import MetricSample, Resource
from ..utils.helpers import from_epoch_ms, safe_float, safe_get, to_epoch_ms
from .base import HttpProvider

logger = get_logger(__name__)

VM_RESOURCE_KIND = "VirtualMachine"


class VROpsProvider(HttpProvider, MonitoringProvider):
    name = "vrops"

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        auth_source: str = "",
        verify_ssl: bool = True,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(host, username, password, verify_ssl=verify_ssl, timeout=timeout, transport=transport)
        self.auth_source = auth_source
        self._ids: Dict[str, str] = {}

    async def _login(self, client: httpx.AsyncClient) -> None:
        body = {"username": self.username, "password": self.password}
        if self.auth_source:
            body["authSource"] = self.auth_source
        response = await client.post("/suite-api/api/auth/token/acquire", json=body)
        response.raise_for_status()
        client.headers["Authorization"] = f"vRealizeOpsToken {response.json()['token']}"

    async def _logout(self, client: httpx.AsyncClient) -> None:
        await client.post("/suite-api/api/auth/token/release")

    async def fetch_metric_samples(
        self,
        resource: Resource,
        keys: Sequence[str],
        begin: datetime,
        end: datetime,
    ) -> List[MetricSample]:
        resource_id = await self._resource_id(resource)
        params = [("statKey", key) for key in keys]
        params += [("begin", to_epoch_ms(begin)), ("end", to_epoch_ms(end))]
        response = await self._request(
            "GET", f"/suite-api/api/resources/{resource_id}/stats", MonitoringError, params=params,
        )
        return parse_stats(response.json())

    async def _resource_id(self, resource: Resource) -> str:
        if resource.name in self._ids:
            return self._ids[resource.name]

        response = await self._request(
            "GET", "/suite-api/api/resources", MonitoringError,
            params={"name": resource.name, "resourceKind": VM_RESOURCE_KIND},
        )
        matches = [
            item["identifier"]
            for item in response.json().get("resourceList", [])
            if safe_get(item, "resourceKey", "name") == resource.name
        ]
        if not matches:
            raise DataUnavailableError(f"{resource.name} is not known to vROps")
        if len(matches) > 1:
            logger.warning(
                f"[vrops] {len(matches)} objects named {resource.name}, using the first",
                extra={"resource": resource.name},
            )
        self._ids[resource.name] = matches[0]
        return matches[0]


def parse_stats(payload: Dict) -> List[MetricSample]:
    """Flatten a ``/resources/{id}/stats`` response into samples."""
    samples: List[MetricSample] = []
    for entry in payload.get("values", []):
        for stat in safe_get(entry, "stat-list", "stat", default=[]) or []:
            key = safe_get(stat, "statKey", "key")
            if not key:
                continue
            for ts, raw in zip(stat.get("timestamps", []), stat.get("data", [])):
                value = safe_float(raw, default=None)
                if value is None:
                    continue
                samples.append(MetricSample(key=key, value=value, timestamp=from_epoch_ms(ts)))
    return samples
