"""
vCenter Provider -- inventory, power control and tag-based grouping.

Talks to the vSphere Automation REST API (``/api``, vSphere 7.0U2+).
Authentication is a session token from ``POST /api/session`` sent back in
the ``vmware-api-session-id`` header.

Grouping: every tag in the group category names a group; a VM that also
carries the resize tag (``<resize category>/<resize tag>``) is targeted,
the other members are excluded.
"""

from typing import Any, Dict, List, Optional, Set

import httpx

from ..core.errors import ConfigurationError, InventoryError, ReconfigureError
from ..core.interfaces import GroupingProvider, InventoryProvider
from ..core.logging import get_logger
from ..core.models import Group, PowerState, Resource, ToolsState
from .base import HttpProvider

logger = get_logger(__name__)

_POWER_STATES = {
    "POWERED_ON": PowerState.POWERED_ON,
    "POWERED_OFF": PowerState.POWERED_OFF,
    "SUSPENDED": PowerState.SUSPENDED,
}

_TOOLS_STATES = {
    "RUNNING": ToolsState.RUNNING,
    "EXECUTING_SCRIPTS": ToolsState.RUNNING,
    "NOT_RUNNING": ToolsState.NOT_RUNNING,
}


class VCenterProvider(HttpProvider, InventoryProvider, GroupingProvider):
    name = "vcenter"

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        verify_ssl: bool = True,
        timeout: float = 30.0,
        resize_tag_category: str = "Rightsize",
        resize_tag_name: str = "Enabled",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(host, username, password, verify_ssl=verify_ssl, timeout=timeout, transport=transport)
        self.resize_tag_category = resize_tag_category
        self.resize_tag_name = resize_tag_name

    async def _login(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/api/session", auth=(self.username, self.password))
        response.raise_for_status()
        client.headers["vmware-api-session-id"] = response.json()

    async def _logout(self, client: httpx.AsyncClient) -> None:
        await client.delete("/api/session")

    # ─────────────────────────────────────────────────────────
    # Inventory
    # ─────────────────────────────────────────────────────────

    async def list_resources(self, filter: Optional[Dict[str, Any]] = None) -> List[Resource]:
        """
        List VMs. ``filter`` accepts the vCenter list filters, e.g.
        ``{"names": ["web-01"], "power_states": ["POWERED_ON"]}``.
        """
        params = {k: v for k, v in (filter or {}).items() if v}
        response = await self._request("GET", "/api/vcenter/vm", InventoryError, params=params)
        resources = [_to_resource(item) for item in response.json()]
        logger.info(f"[vcenter] Listed {len(resources)} VMs")
        return resources

    async def get_power_state(self, resource: Resource) -> PowerState:
        response = await self._request("GET", f"/api/vcenter/vm/{resource.id}/power", InventoryError)
        state = response.json().get("state")
        if state not in _POWER_STATES:
            raise InventoryError(f"{resource.name}: unexpected power state {state!r}")
        return _POWER_STATES[state]

    async def get_tools_state(self, resource: Resource) -> ToolsState:
        response = await self._request("GET", f"/api/vcenter/vm/{resource.id}/tools", InventoryError)
        return _TOOLS_STATES.get(response.json().get("run_state"), ToolsState.UNKNOWN)

    async def shutdown_guest(self, resource: Resource) -> None:
        await self._request("POST", f"/api/vcenter/vm/{resource.id}/guest/power", InventoryError,
                            params={"action": "shutdown"})

    async def force_power_off(self, resource: Resource) -> None:
        await self._request("POST", f"/api/vcenter/vm/{resource.id}/power", InventoryError,
                            params={"action": "stop"})

    async def power_on(self, resource: Resource) -> None:
        await self._request("POST", f"/api/vcenter/vm/{resource.id}/power", InventoryError,
                            params={"action": "start"})

    async def set_cpu_count(self, resource: Resource, count: int) -> None:
        await self._require_powered_off(resource, "cpu")
        await self._request("PATCH", f"/api/vcenter/vm/{resource.id}/hardware/cpu", ReconfigureError,
                            json={"count": int(count)})
        logger.info(f"[vcenter] {resource.name}: cpu count set to {count}", extra={"resource": resource.name})

    async def set_memory_mb(self, resource: Resource, size_mb: int) -> None:
        await self._require_powered_off(resource, "memory")
        await self._request("PATCH", f"/api/vcenter/vm/{resource.id}/hardware/memory", ReconfigureError,
                            json={"size_MiB": int(size_mb)})
        logger.info(f"[vcenter] {resource.name}: memory set to {size_mb}MB", extra={"resource": resource.name})

    async def _require_powered_off(self, resource: Resource, what: str):
        # Hot-add may let vCenter accept the change while running; never rely on it
        state = await self.get_power_state(resource)
        if state != PowerState.POWERED_OFF:
            raise ReconfigureError(f"{resource.name}: cannot change {what} while {state.value}")

    # ─────────────────────────────────────────────────────────
    # Grouping
    # ─────────────────────────────────────────────────────────

    async def list_group_membership(self, criterion: str) -> Dict[str, Group]:
        """Resolve groups from the tags of category ``criterion``."""
        categories = await self._category_ids()
        if criterion not in categories:
            raise ConfigurationError(f"vCenter tag category '{criterion}' not found")

        group_tags = await self._tags_in_category(categories[criterion])
        flagged = await self._flagged_vm_ids(categories)

        names_by_id = {r.id: r.name for r in await self.list_resources()}
        members_by_tag = await self._attached_vms(list(group_tags))

        groups: Dict[str, Group] = {}
        for tag_id, tag_name in sorted(group_tags.items(), key=lambda kv: kv[1]):
            members = [vm for vm in members_by_tag.get(tag_id, []) if vm in names_by_id]
            targeted = sorted(names_by_id[vm] for vm in members if vm in flagged)
            excluded = sorted(names_by_id[vm] for vm in members if vm not in flagged)
            groups[tag_name] = Group(name=tag_name, targeted=tuple(targeted), excluded=tuple(excluded))

        logger.info(f"[vcenter] Resolved {len(groups)} groups from category '{criterion}'")
        return groups

    async def _category_ids(self) -> Dict[str, str]:
        response = await self._request("GET", "/api/cis/tagging/category", InventoryError)
        ids = {}
        for category_id in response.json():
            detail = await self._request("GET", f"/api/cis/tagging/category/{category_id}", InventoryError)
            ids[detail.json()["name"]] = category_id
        return ids

    async def _tags_in_category(self, category_id: str) -> Dict[str, str]:
        """{tag id: tag name} for one category."""
        response = await self._request(
            "POST", "/api/cis/tagging/tag", InventoryError,
            params={"action": "list-tags-for-category"}, json={"category_id": category_id},
        )
        tags = {}
        for tag_id in response.json():
            detail = await self._request("GET", f"/api/cis/tagging/tag/{tag_id}", InventoryError)
            tags[tag_id] = detail.json()["name"]
        return tags

    async def _attached_vms(self, tag_ids: List[str]) -> Dict[str, List[str]]:
        if not tag_ids:
            return {}
        response = await self._request(
            "POST", "/api/cis/tagging/tag-association", InventoryError,
            params={"action": "list-attached-objects-on-tags"}, json={"tag_ids": tag_ids},
        )
        attached: Dict[str, List[str]] = {}
        for entry in response.json():
            attached[entry["tag_id"]] = [
                obj["id"] for obj in entry.get("object_ids", []) if obj.get("type") == "VirtualMachine"
            ]
        return attached

    async def _flagged_vm_ids(self, categories: Dict[str, str]) -> Set[str]:
        category_id = categories.get(self.resize_tag_category)
        if category_id is None:
            logger.warning(f"[vcenter] Resize tag category '{self.resize_tag_category}' not found; nothing targeted")
            return set()
        tags = await self._tags_in_category(category_id)
        tag_ids = [tid for tid, name in tags.items() if name == self.resize_tag_name]
        if not tag_ids:
            logger.warning(
                f"[vcenter] Resize tag '{self.resize_tag_category}/{self.resize_tag_name}' not found; nothing targeted"
            )
            return set()
        attached = await self._attached_vms(tag_ids)
        return {vm for vms in attached.values() for vm in vms}


def _to_resource(item: Dict[str, Any]) -> Resource:
    return Resource(
        id=item["vm"],
        name=item["name"],
        cpu_count=int(item.get("cpu_count") or 0),
        memory_mb=float(item.get("memory_size_MiB") or 0),
        power_state=_POWER_STATES.get(item.get("power_state"), PowerState.POWERED_OFF),
    )
