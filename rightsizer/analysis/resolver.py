"""
Recommendation resolver.

Monitoring returns one sample per refresh cycle, so the same key shows up
many times inside the lookback window. Only the newest sample counts;
older ones are superseded, never averaged.
"""

from typing import Callable, Dict, Iterable, Optional, Sequence

from ..core.errors import DataUnavailableError
from ..core.interfaces import MonitoringProvider
from ..core.logging import get_logger
from ..core.models import MetricSample, Resource
from ..utils.helpers import days_ago, utc_now

logger = get_logger(__name__)

DEFAULT_LOOKBACK_DAYS = 5


def latest_values(samples: Iterable[MetricSample], keys: Optional[Sequence[str]] = None) -> Dict[str, float]:
    """
    Reduce samples to {key: value of the most recent sample}.

    On equal timestamps the sample seen last wins. Keys without samples are
    absent from the result.
    """
    wanted = set(keys) if keys is not None else None
    newest: Dict[str, MetricSample] = {}
    for sample in samples:
        if wanted is not None and sample.key not in wanted:
            continue
        current = newest.get(sample.key)
        if current is None or sample.timestamp >= current.timestamp:
            newest[sample.key] = sample
    return {key: s.value for key, s in newest.items()}


class RecommendationResolver:

    def __init__(
        self,
        monitoring: MonitoringProvider,
        lookback_days: float = DEFAULT_LOOKBACK_DAYS,
        clock: Callable = utc_now,
    ):
        self.monitoring = monitoring
        self.lookback_days = lookback_days
        self._clock = clock

    async def resolve(self, resource: Resource, keys: Sequence[str]) -> Dict[str, float]:
        end = self._clock()
        begin = days_ago(self.lookback_days, now=end)
        try:
            samples = await self.monitoring.fetch_metric_samples(resource, keys, begin, end)
        except DataUnavailableError as e:
            logger.info(f"No recommendation data for {resource.name}: {e}", extra={"resource": resource.name})
            return {}

        values = latest_values(samples, keys)
        missing = [k for k in keys if k not in values]
        if missing:
            logger.debug(
                f"{resource.name}: no samples for {missing} in last {self.lookback_days}d",
                extra={"resource": resource.name},
            )
        return values
