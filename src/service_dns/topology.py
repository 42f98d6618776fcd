from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .exceptions import ConfigError
from .informers import WatchCache, WatchCacheFactory
from .logging_ import get_logger

CLUSTER_IP = 'ClusterIP'
NODE_PORT = 'NodePort'
LOAD_BALANCER = 'LoadBalancer'
EXTERNAL_NAME = 'ExternalName'

SUPPORTED_SERVICE_TYPES = (CLUSTER_IP, NODE_PORT, LOAD_BALANCER, EXTERNAL_NAME)


class ServiceTypeFilter:
    """Set of Service types to publish; empty means every type."""

    def __init__(self, types: Optional[Iterable[str]] = None):
        types = [t for t in (types or []) if t != '']
        for t in types:
            if t not in SUPPORTED_SERVICE_TYPES:
                supported = ' '.join(f'"{s}"' for s in SUPPORTED_SERVICE_TYPES)
                raise ConfigError(f'unsupported service type filter: "{t}". Supported types are: [{supported}]')
        self.types = frozenset(types)

    @property
    def enabled(self) -> bool:
        return bool(self.types)

    def is_required(self, *types: str) -> bool:
        if not self.enabled:
            return True
        return any(t in self.types for t in types)

    def matches(self, service) -> bool:
        return self.is_required(service.spec.type or CLUSTER_IP)

    def filter(self, services: List[object]) -> List[object]:
        if not self.enabled:
            return services
        return [s for s in services if self.matches(s)]


@dataclass(frozen=True)
class WatchTopology:
    """Which caches the translator needs, computed once from the type filter."""
    nodes: bool
    pods: bool
    endpoint_slices: bool
    endpoint_slice_events: bool

    @classmethod
    def from_filter(cls, type_filter: ServiceTypeFilter, listen_endpoint_events: bool = False) -> 'WatchTopology':
        backed_by_pods = type_filter.is_required(NODE_PORT, CLUSTER_IP)
        return cls(
            nodes=type_filter.is_required(NODE_PORT),
            pods=backed_by_pods,
            endpoint_slices=backed_by_pods,
            endpoint_slice_events=listen_endpoint_events and backed_by_pods,
        )

    def build(self, factory: WatchCacheFactory) -> 'WatchSet':
        return WatchSet(
            services=factory.services(),
            nodes=factory.nodes() if self.nodes else None,
            pods=factory.pods() if self.pods else None,
            endpoint_slices=factory.endpoint_slices() if self.endpoint_slices else None,
            topology=self,
        )


@dataclass(frozen=True)
class WatchSet:
    services: WatchCache
    nodes: Optional[WatchCache]
    pods: Optional[WatchCache]
    endpoint_slices: Optional[WatchCache]
    topology: WatchTopology

    def event_sources(self) -> Tuple[WatchCache, ...]:
        """Caches whose changes should trigger a new translation."""
        sources = [self.services]
        if self.topology.endpoint_slice_events:
            sources.append(self.endpoint_slices)
        if self.topology.nodes:
            sources.append(self.nodes)
        return tuple(sources)

    def add_event_handler(self, handler) -> int:
        sources = self.event_sources()
        for cache in sources:
            cache.add_event_handler(handler)
        get_logger('watch-topology').debug("Registered event handler", kinds=[c.kind for c in sources])
        return len(sources)
