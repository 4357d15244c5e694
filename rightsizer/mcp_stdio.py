import json
import sys

# Force ALL logs to stderr (never stdout) -- required by the MCP stdio protocol
from rightsizer.core.logging import configure_logging
configure_logging(level="ERROR", stream=sys.stderr, force=True)

from mcp.server.fastmcp import FastMCP
from rightsizer.core.config import RightsizeConfig
from rightsizer.providers.factory import ProviderFactory
from rightsizer.runner import run_rightsizing
from rightsizer.api.adapters.report_adapter import adapt_run_report

mcp = FastMCP("RightsizerVSphere")


def _split(value: str):
    return [v.strip() for v in value.split(",") if v.strip()] or None


@mcp.tool()
async def run_rightsizing_report(
    groups: str = "",
    vms: str = "",
    tolerance: float = 0.0,
    buffer: float = 0.0,
    grouped: bool = True,
) -> str:
    """
    Read-only right-sizing report for vSphere VMs.
    Nothing is powered off or reconfigured. Zero tolerance/buffer means
    use the configured defaults.
    """

    config = RightsizeConfig.from_env().with_overrides(
        read_only=True,
        tolerance_fraction=tolerance or None,
        buffer_fraction=buffer or None,
    ).validate()

    report = await run_rightsizing(
        config,
        group_names=_split(groups),
        resource_names=_split(vms),
        grouped=grouped,
    )

    return json.dumps(adapt_run_report(report), default=str)


@mcp.tool()
async def provider_status() -> str:
    """
    Check vCenter / vROps connectivity and authentication.
    """

    statuses = await ProviderFactory.get_all_statuses(RightsizeConfig.from_env())
    return json.dumps(statuses, default=str)


def main():
    # MCP handshake requires clean stdout: no prints here
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
