"""
ProviderFactory -- builds and connects the vCenter / vROps providers.

Architecture:
  1. Instantiate each provider from RightsizeConfig (kwargs filtered per
     constructor signature)
  2. Connect all providers concurrently via asyncio.gather()
  3. Any connection failure is fatal: the others are closed and the
     ProviderConnectionError propagates
  4. Status checks wrap each provider in a hard timeout and never raise
"""

import asyncio
import inspect
import time
from typing import Any, Dict, Type

from ..core.config import RightsizeConfig
from ..core.errors import ProviderConnectionError
from ..core.logging import get_logger
from .base import HttpProvider
from .vcenter import VCenterProvider
from .vrops import VROpsProvider

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────
# Safe async execution wrapper
# ─────────────────────────────────────────────────────────────

async def safe_status(
    name: str,
    provider_instance: HttpProvider,
    timeout: float = 20.0,
) -> Dict[str, Any]:
    """
    Run provider.get_status() with hard timeout protection.

    Guarantees:
      - Never raises
      - Always returns structured result
      - Enforced upper time bound
    """
    try:
        return await asyncio.wait_for(provider_instance.get_status(), timeout=timeout)

    except asyncio.TimeoutError:
        logger.warning(f"Provider '{name}' timed out after {timeout}s")
        return {
            "host": provider_instance.base_url,
            "authenticated": False,
            "error": f"Status check timed out after {timeout}s",
        }

    except Exception as e:
        logger.error(f"Provider '{name}' failed: {e}")
        return {
            "host": provider_instance.base_url,
            "authenticated": False,
            "error": str(e),
        }


# ─────────────────────────────────────────────────────────────
# Provider Factory
# ─────────────────────────────────────────────────────────────

class ProviderFactory:

    _providers: Dict[str, Type[HttpProvider]] = {
        "vcenter": VCenterProvider,
        "vrops": VROpsProvider,
    }

    @classmethod
    def get_provider(cls, provider_name: str, **kwargs) -> HttpProvider:
        """
        Return provider instance.

        Extra kwargs are filtered against the provider's constructor
        signature, so one kwargs dict can feed every provider.
        """
        name = provider_name.lower()
        provider_class = cls._providers.get(name)

        if not provider_class:
            raise ValueError(f"Unknown provider: {provider_name}")

        sig = inspect.signature(provider_class.__init__)
        accepted_kwargs = {k: v for k, v in kwargs.items() if k in sig.parameters}
        return provider_class(**accepted_kwargs)

    @classmethod
    def from_config(cls, config: RightsizeConfig) -> Dict[str, HttpProvider]:
        common = {
            "username": config.username,
            "password": config.password,
            "verify_ssl": config.verify_ssl,
            "timeout": config.request_timeout_seconds,
        }
        return {
            "vcenter": cls.get_provider(
                "vcenter",
                host=config.vcenter_host,
                resize_tag_category=config.resize_tag_category,
                resize_tag_name=config.resize_tag_name,
                **common,
            ),
            "vrops": cls.get_provider(
                "vrops",
                host=config.vrops_host,
                auth_source=config.vrops_auth_source,
                **common,
            ),
        }

    @classmethod
    async def connect_all(cls, providers: Dict[str, HttpProvider]) -> Dict[str, HttpProvider]:
        """Connect every provider; on any failure close them all and re-raise."""
        names = list(providers)
        results = await asyncio.gather(
            *(providers[n].connect() for n in names), return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            await cls.close_all(providers)
            for failure in failures:
                if not isinstance(failure, ProviderConnectionError):
                    raise failure
            raise failures[0]
        return providers

    @classmethod
    async def close_all(cls, providers: Dict[str, HttpProvider]) -> None:
        await asyncio.gather(*(p.close() for p in providers.values()), return_exceptions=True)

    @classmethod
    async def get_all_statuses(cls, config: RightsizeConfig, timeout: float = 20.0) -> Dict[str, Any]:
        """
        Concurrent connection check.

        Returns:
        {
            "vcenter": {...},
            "vrops": {...},
            "_meta": {"elapsed_ms": ...}
        }
        """
        providers = cls.from_config(config)
        t0 = time.monotonic()
        try:
            results = await asyncio.gather(
                *(safe_status(name, p, timeout=timeout) for name, p in providers.items())
            )
        finally:
            await cls.close_all(providers)

        statuses: Dict[str, Any] = dict(zip(providers, results))
        elapsed = time.monotonic() - t0
        statuses["_meta"] = {"elapsed_ms": round(elapsed * 1000)}
        logger.info(f"Provider status checked in {elapsed:.2f}s: {list(providers)}")
        return statuses
