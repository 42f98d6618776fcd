from typing import List, Optional

from .annotations import ACCESS_PRIVATE, ACCESS_PUBLIC
from .informers import NAMESPACE_INDEX, WatchCache
from .labels import Selector
from .logging_ import get_logger
from .targets import TargetKind, classify_target

NODE_EXTERNAL_IP = 'ExternalIP'
NODE_INTERNAL_IP = 'InternalIP'
NODE_ROLE_LABEL = 'node-role.kubernetes.io/node'


def is_pod_ready(pod) -> bool:
    for condition in (pod.status.conditions or []):
        if condition.type == 'Ready':
            return condition.status == 'True'
    return False


def _dedupe(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for v in values:
        if v not in seen:
            seen.add(v)
            result.append(v)
    return result


def node_addresses(nodes: List[object], access: str = '', expose_internal_ipv6: bool = False) -> List[str]:
    """Pick addresses from a set of nodes according to the access scope.

    ``private`` yields internal addresses. ``public`` yields external
    addresses, plus internal IPv6 ones when ``expose_internal_ipv6`` is set.
    Without an access scope external addresses win when any node has one.
    """
    external, internal, internal_v6 = [], [], []
    for node in nodes:
        for address in (node.status.addresses or []) if node.status else []:
            if address.type == NODE_EXTERNAL_IP:
                external.append(address.address)
            elif address.type == NODE_INTERNAL_IP:
                internal.append(address.address)
                if classify_target(address.address) == TargetKind.IPV6:
                    internal_v6.append(address.address)

    public = external + internal_v6 if expose_internal_ipv6 else external
    if access == ACCESS_PRIVATE:
        return _dedupe(internal)
    if access == ACCESS_PUBLIC or external:
        return _dedupe(public)
    return _dedupe(internal)


class NodeTargetResolver:
    def __init__(self, nodes: WatchCache, pods: Optional[WatchCache] = None, expose_internal_ipv6: bool = False):
        self.nodes = nodes
        self.pods = pods
        self.expose_internal_ipv6 = expose_internal_ipv6
        self.logger = get_logger('node-targets')

    def _local_nodes(self, service) -> List[object]:
        if self.pods is None:
            return []
        selector = Selector.from_set(service.spec.selector)
        ready, ready_terminating, running = [], [], []
        for pod in self.pods.by_index(NAMESPACE_INDEX, service.metadata.namespace):
            if not selector.matches(pod.metadata.labels):
                continue
            if not pod.status or pod.status.phase != 'Running':
                continue
            node = self.nodes.get(pod.spec.node_name) if pod.spec.node_name else None
            if node is None:
                self.logger.debug("Unable to find node for pod", pod=pod.metadata.name, node=pod.spec.node_name)
                continue
            running.append(node)
            if is_pod_ready(pod):
                if pod.metadata.deletion_timestamp is None:
                    ready.append(node)
                else:
                    ready_terminating.append(node)

        # prefer ready non-terminating pods, then ready, then running
        for candidates in (ready, ready + ready_terminating, running):
            if candidates:
                return self._unique_nodes(candidates)
        return []

    @staticmethod
    def _unique_nodes(nodes: List[object]) -> List[object]:
        seen = set()
        result = []
        for node in nodes:
            if node.metadata.name not in seen:
                seen.add(node.metadata.name)
                result.append(node)
        return result

    def nodes_for(self, service) -> List[object]:
        if service.spec.external_traffic_policy == 'Local':
            return self._local_nodes(service)
        return sorted(self.nodes.list(), key=lambda n: n.metadata.name)

    def targets(self, service, access: str = '') -> List[str]:
        return node_addresses(self.nodes_for(service), access, self.expose_internal_ipv6)

    def role_targets(self, internal: bool) -> List[str]:
        """Addresses of worker nodes, as published by kops dns-controller."""
        workers = [n for n in sorted(self.nodes.list(), key=lambda n: n.metadata.name)
                   if NODE_ROLE_LABEL in (n.metadata.labels or {})]
        return node_addresses(workers, ACCESS_PRIVATE if internal else ACCESS_PUBLIC, self.expose_internal_ipv6)
