"""
Provider tests -- vCenter and vROps REST clients against httpx.MockTransport.
"""

import asyncio
import json
from datetime import timedelta

import httpx
import pytest

from rightsizer.core.config import CPU_RECOMMENDATION_KEY as CPU, MEM_RECOMMENDATION_KEY as MEM, RightsizeConfig
from rightsizer.core.errors import (
    ConfigurationError,
    DataUnavailableError,
    InventoryError,
    ProviderConnectionError,
    ReconfigureError,
)
from rightsizer.core.models import PowerState, ToolsState
from rightsizer.providers.factory import ProviderFactory, safe_status
from rightsizer.providers.vcenter import VCenterProvider
from rightsizer.providers.vrops import VROpsProvider, parse_stats

from .conftest import NOW, make_vm


class Router:
    """Minimal route table for httpx.MockTransport; records every request."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        action = request.url.params.get("action")
        key = (request.method, request.url.path + (f"?{action}" if action else ""))
        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404, json={"messages": [{"default_message": f"no route {key}"}]})
        if callable(route):
            return route(request)
        status, body = route
        return httpx.Response(status, json=body)

    def seen(self, method, path):
        return [r for r in self.requests if r.method == method and r.url.path == path]


# ─────────────────────────────────────────────────────────────
# vCenter
# ─────────────────────────────────────────────────────────────

VMS = [
    {"vm": "vm-1", "name": "web01", "cpu_count": 4, "memory_size_MiB": 8192, "power_state": "POWERED_ON"},
    {"vm": "vm-2", "name": "web02", "cpu_count": 2, "memory_size_MiB": 4096, "power_state": "POWERED_OFF"},
    {"vm": "vm-3", "name": "db01", "cpu_count": 8, "memory_size_MiB": 32768, "power_state": "POWERED_ON"},
]


def _vcenter_routes(extra=None):
    routes = {
        ("POST", "/api/session"): (201, "session-token"),
        ("DELETE", "/api/session"): (204, None),
        ("GET", "/api/vcenter/vm"): (200, VMS),
        ("GET", "/api/vcenter/vm/vm-1/power"): (200, {"state": "POWERED_ON"}),
        ("GET", "/api/vcenter/vm/vm-2/power"): (200, {"state": "POWERED_OFF"}),
        ("GET", "/api/vcenter/vm/vm-1/tools"): (200, {"run_state": "RUNNING"}),
        ("PATCH", "/api/vcenter/vm/vm-2/hardware/cpu"): (204, None),
        ("PATCH", "/api/vcenter/vm/vm-2/hardware/memory"): (204, None),
        ("POST", "/api/vcenter/vm/vm-1/guest/power?shutdown"): (204, None),
        ("POST", "/api/vcenter/vm/vm-1/power?stop"): (204, None),
        ("POST", "/api/vcenter/vm/vm-1/power?start"): (204, None),
    }
    routes.update(extra or {})
    return routes


def _vcenter(router, **kwargs):
    return VCenterProvider("vc.example.com", "svc", "secret", transport=httpx.MockTransport(router), **kwargs)


class TestVCenterSession:
    @pytest.mark.asyncio
    async def test_login_sets_session_header(self):
        router = Router(_vcenter_routes())
        async with _vcenter(router) as vc:
            resources = await vc.list_resources()

        login = router.seen("POST", "/api/session")[0]
        assert login.headers["authorization"].startswith("Basic ")
        listing = router.seen("GET", "/api/vcenter/vm")[0]
        assert listing.headers["vmware-api-session-id"] == "session-token"
        assert router.seen("DELETE", "/api/session")
        assert [r.name for r in resources] == ["web01", "web02", "db01"]
        assert resources[1].power_state == PowerState.POWERED_OFF
        assert resources[2].memory_mb == 32768

    @pytest.mark.asyncio
    async def test_bad_credentials(self):
        router = Router(_vcenter_routes({("POST", "/api/session"): (401, {"error_type": "UNAUTHENTICATED"})}))
        vc = _vcenter(router)
        with pytest.raises(ProviderConnectionError, match="HTTP 401"):
            await vc.connect()

    @pytest.mark.asyncio
    async def test_status_reports_failure(self):
        router = Router(_vcenter_routes({("POST", "/api/session"): (401, {})}))
        status = await _vcenter(router).get_status()
        assert status["authenticated"] is False
        assert status["host"] == "https://vc.example.com"
        assert "401" in status["error"]

    @pytest.mark.asyncio
    async def test_request_before_connect(self):
        with pytest.raises(ProviderConnectionError):
            await _vcenter(Router({})).list_resources()


class TestVCenterPower:
    @pytest.mark.asyncio
    async def test_states(self):
        router = Router(_vcenter_routes())
        async with _vcenter(router) as vc:
            vm = make_vm("web01")
            vm.id = "vm-1"
            assert await vc.get_power_state(vm) == PowerState.POWERED_ON
            assert await vc.get_tools_state(vm) == ToolsState.RUNNING

    @pytest.mark.asyncio
    async def test_power_actions(self):
        router = Router(_vcenter_routes())
        async with _vcenter(router) as vc:
            vm = make_vm("web01")
            vm.id = "vm-1"
            await vc.shutdown_guest(vm)
            await vc.force_power_off(vm)
            await vc.power_on(vm)

        actions = [r.url.params.get("action") for r in router.requests if r.method == "POST" and "vm-1" in r.url.path]
        assert actions == ["shutdown", "stop", "start"]

    @pytest.mark.asyncio
    async def test_error_body_in_message(self):
        router = Router(_vcenter_routes({
            ("GET", "/api/vcenter/vm/vm-1/power"): (500, {"messages": [{"default_message": "host disconnected"}]}),
        }))
        async with _vcenter(router) as vc:
            vm = make_vm("web01")
            vm.id = "vm-1"
            with pytest.raises(InventoryError, match="host disconnected"):
                await vc.get_power_state(vm)


class TestVCenterReconfigure:
    @pytest.mark.asyncio
    async def test_refused_while_powered_on(self):
        router = Router(_vcenter_routes())
        async with _vcenter(router) as vc:
            vm = make_vm("web01")
            vm.id = "vm-1"
            with pytest.raises(ReconfigureError):
                await vc.set_cpu_count(vm, 2)
        assert not [r for r in router.requests if r.method == "PATCH"]

    @pytest.mark.asyncio
    async def test_patch_when_powered_off(self):
        router = Router(_vcenter_routes())
        async with _vcenter(router) as vc:
            vm = make_vm("web02")
            vm.id = "vm-2"
            await vc.set_cpu_count(vm, 2)
            await vc.set_memory_mb(vm, 4710)

        patches = [json.loads(r.content) for r in router.requests if r.method == "PATCH"]
        assert patches == [{"count": 2}, {"size_MiB": 4710}]


TAG_NAMES = {"t-web": "web", "t-db": "db", "t-en": "Enabled", "t-dis": "Disabled"}
ATTACHED = {"t-web": ["vm-1", "vm-2"], "t-db": ["vm-3"], "t-en": ["vm-1", "vm-3"], "t-dis": ["vm-2"]}


def _tagging_routes(categories=None):
    categories = categories or {"cat-g": "RightsizeGroup", "cat-r": "Rightsize"}
    in_category = {"cat-g": ["t-web", "t-db"], "cat-r": ["t-en", "t-dis"]}

    def list_tags(request):
        return httpx.Response(200, json=in_category[json.loads(request.content)["category_id"]])

    def attached(request):
        ids = json.loads(request.content)["tag_ids"]
        return httpx.Response(200, json=[
            {"tag_id": t, "object_ids": [{"type": "VirtualMachine", "id": v} for v in ATTACHED[t]]
             + [{"type": "Datastore", "id": "ds-1"}]}
            for t in ids
        ])

    routes = {
        ("GET", "/api/cis/tagging/category"): (200, list(categories)),
        ("POST", "/api/cis/tagging/tag?list-tags-for-category"): list_tags,
        ("POST", "/api/cis/tagging/tag-association?list-attached-objects-on-tags"): attached,
    }
    for cid, name in categories.items():
        routes[("GET", f"/api/cis/tagging/category/{cid}")] = (200, {"name": name})
    for tid, name in TAG_NAMES.items():
        routes[("GET", f"/api/cis/tagging/tag/{tid}")] = (200, {"name": name})
    return _vcenter_routes(routes)


class TestVCenterGrouping:
    @pytest.mark.asyncio
    async def test_groups_split_by_resize_tag(self):
        router = Router(_tagging_routes())
        async with _vcenter(router) as vc:
            groups = await vc.list_group_membership("RightsizeGroup")

        assert list(groups) == ["db", "web"]
        assert groups["web"].targeted == ("web01",)
        assert groups["web"].excluded == ("web02",)
        assert groups["db"].targeted == ("db01",)
        assert groups["db"].excluded == ()

    @pytest.mark.asyncio
    async def test_missing_group_category(self):
        router = Router(_tagging_routes())
        async with _vcenter(router) as vc:
            with pytest.raises(ConfigurationError):
                await vc.list_group_membership("NoSuchCategory")

    @pytest.mark.asyncio
    async def test_missing_resize_tag_targets_nothing(self):
        router = Router(_tagging_routes())
        async with _vcenter(router, resize_tag_name="Approved") as vc:
            groups = await vc.list_group_membership("RightsizeGroup")
        assert groups["web"].targeted == ()
        assert groups["web"].excluded == ("web01", "web02")


# ─────────────────────────────────────────────────────────────
# vROps
# ─────────────────────────────────────────────────────────────

def _ms(dt):
    return int(dt.timestamp() * 1000)


STATS = {
    "values": [{
        "resourceId": "res-1",
        "stat-list": {"stat": [
            {"statKey": {"key": CPU}, "timestamps": [_ms(NOW - timedelta(days=1)), _ms(NOW)], "data": [2, 4]},
            {"statKey": {"key": MEM}, "timestamps": [_ms(NOW)], "data": [8388608]},
            {"statKey": {}, "timestamps": [1], "data": [1]},
        ]},
    }],
}


def _vrops_routes(resource_list=None):
    return {
        ("POST", "/suite-api/api/auth/token/acquire"): (200, {"token": "tok-1", "validity": 0}),
        ("POST", "/suite-api/api/auth/token/release"): (200, {}),
        ("GET", "/suite-api/api/resources"): (200, {"resourceList": resource_list if resource_list is not None else [
            {"identifier": "res-1", "resourceKey": {"name": "web01", "resourceKindKey": "VirtualMachine"}},
            {"identifier": "res-9", "resourceKey": {"name": "web01-clone"}},
        ]}),
        ("GET", "/suite-api/api/resources/res-1/stats"): (200, STATS),
    }


def _vrops(router, **kwargs):
    return VROpsProvider("vrops.example.com", "svc", "secret", transport=httpx.MockTransport(router), **kwargs)


class TestVROps:
    @pytest.mark.asyncio
    async def test_fetch_samples(self):
        router = Router(_vrops_routes())
        async with _vrops(router, auth_source="corp.local") as vr:
            samples = await vr.fetch_metric_samples(make_vm("web01"), [CPU, MEM], NOW - timedelta(days=5), NOW)

        login = json.loads(router.seen("POST", "/suite-api/api/auth/token/acquire")[0].content)
        assert login["authSource"] == "corp.local"
        stats = router.seen("GET", "/suite-api/api/resources/res-1/stats")[0]
        assert stats.headers["authorization"] == "vRealizeOpsToken tok-1"
        assert stats.url.params.get_list("statKey") == [CPU, MEM]
        assert stats.url.params["end"] == str(_ms(NOW))
        assert [(s.key, s.value) for s in samples] == [(CPU, 2), (CPU, 4), (MEM, 8388608)]

    @pytest.mark.asyncio
    async def test_resource_id_cached(self):
        router = Router(_vrops_routes())
        async with _vrops(router) as vr:
            vm = make_vm("web01")
            await vr.fetch_metric_samples(vm, [CPU], NOW - timedelta(days=5), NOW)
            await vr.fetch_metric_samples(vm, [CPU], NOW - timedelta(days=5), NOW)
        assert len(router.seen("GET", "/suite-api/api/resources")) == 1

    @pytest.mark.asyncio
    async def test_unknown_resource(self):
        router = Router(_vrops_routes(resource_list=[]))
        async with _vrops(router) as vr:
            with pytest.raises(DataUnavailableError):
                await vr.fetch_metric_samples(make_vm("ghost"), [CPU], NOW - timedelta(days=5), NOW)

    def test_parse_stats_skips_unusable_values(self):
        payload = {"values": [{"stat-list": {"stat": [
            {"statKey": {"key": CPU}, "timestamps": [1000, 2000], "data": ["NaN-ish", 6]},
        ]}}]}
        samples = parse_stats(payload)
        assert [(s.key, s.value) for s in samples] == [(CPU, 6)]

    def test_parse_stats_empty(self):
        assert parse_stats({}) == []


# ─────────────────────────────────────────────────────────────
# Factory
# ─────────────────────────────────────────────────────────────

class TestProviderFactory:
    def test_from_config(self):
        cfg = RightsizeConfig(vcenter_host="vc.example.com", vrops_host="https://vrops.example.com:8443",
                              username="svc", password="secret", vrops_auth_source="corp",
                              resize_tag_name="Approved")
        providers = ProviderFactory.from_config(cfg)

        assert providers["vcenter"].base_url == "https://vc.example.com"
        assert providers["vcenter"].resize_tag_name == "Approved"
        assert providers["vrops"].base_url == "https://vrops.example.com:8443"
        assert providers["vrops"].auth_source == "corp"

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            ProviderFactory.get_provider("hyperv", host="x", username="u", password="p")

    @pytest.mark.asyncio
    async def test_connect_all_closes_on_failure(self):
        good = _vrops(Router(_vrops_routes()))
        bad = _vcenter(Router(_vcenter_routes({("POST", "/api/session"): (403, {})})))
        with pytest.raises(ProviderConnectionError):
            await ProviderFactory.connect_all({"vcenter": bad, "vrops": good})
        assert good._client is None

    @pytest.mark.asyncio
    async def test_safe_status_timeout(self):
        class Hanging:
            base_url = "https://slow.example.com"

            async def get_status(self):
                await asyncio.sleep(10)

        status = await safe_status("slow", Hanging(), timeout=0.01)
        assert status["authenticated"] is False
        assert "timed out" in status["error"]
