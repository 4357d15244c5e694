"""
Run helpers shared by the CLI, the HTTP API and the MCP server.

Connects the providers from configuration, runs one orchestrated pass,
and always closes the sessions again.
"""

from typing import Optional, Sequence

from .core.config import RightsizeConfig
from .core.logging import get_logger
from .core.models import RunReport
from .core.orchestrator import RightsizeOrchestrator
from .providers.factory import ProviderFactory

logger = get_logger(__name__)


async def run_rightsizing(
    config: RightsizeConfig,
    group_names: Optional[Sequence[str]] = None,
    resource_names: Optional[Sequence[str]] = None,
    grouped: bool = True,
) -> RunReport:
    """
    Run one right-sizing pass against live vCenter / vROps.

    Raises ConfigurationError or ProviderConnectionError before any
    resource is touched; everything after that is reported per resource.
    """
    config.validate(require_connections=True)
    providers = ProviderFactory.from_config(config)
    await ProviderFactory.connect_all(providers)
    try:
        vcenter = providers["vcenter"]
        orchestrator = RightsizeOrchestrator(
            config,
            inventory=vcenter,
            monitoring=providers["vrops"],
            grouping=vcenter if grouped else None,
        )
        return await orchestrator.run(group_names=group_names, resource_names=resource_names)
    finally:
        await ProviderFactory.close_all(providers)
