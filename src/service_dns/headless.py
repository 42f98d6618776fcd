from typing import Dict, List, Optional, Tuple

from .annotations import (ACCESS_PUBLIC, ENDPOINTS_TYPE_HOST_IP, ENDPOINTS_TYPE_NODE_EXTERNAL_IP,
                          Directives, targets_from_annotations)
from .endpoint import Endpoint, new_endpoint
from .informers import SERVICE_INDEX, WatchCache
from .labels import Selector
from .logging_ import get_logger
from .nodes import node_addresses
from .targets import record_type_for

POD_ADDRESS_TYPES = ('IPv4', 'IPv6')


class HeadlessPodResolver:
    """Builds per-pod and aggregate records for Services without a cluster IP.

    Serving pods are found through the EndpointSlice cache, indexed by owning
    Service, so a lookup never scans unrelated slices.
    """

    def __init__(self, endpoint_slices: WatchCache, pods: WatchCache, nodes: Optional[WatchCache] = None,
                 publish_host_ip: bool = False, always_publish_not_ready: bool = False,
                 expose_internal_ipv6: bool = False):
        self.endpoint_slices = endpoint_slices
        self.pods = pods
        self.nodes = nodes
        self.publish_host_ip = publish_host_ip
        self.always_publish_not_ready = always_publish_not_ready
        self.expose_internal_ipv6 = expose_internal_ipv6
        self.logger = get_logger('headless-resolver')

    def _pod_targets(self, pod, endpoint, directives: Directives) -> List[str]:
        annotated = targets_from_annotations(pod.metadata.annotations or {})
        if annotated:
            return annotated
        if directives.endpoints_type == ENDPOINTS_TYPE_NODE_EXTERNAL_IP:
            if self.nodes is None:
                self.logger.warning("Node cache not available; skipping NodeExternalIP endpoint",
                                    pod=pod.metadata.name, namespace=pod.metadata.namespace)
                return []
            node = self.nodes.get(pod.spec.node_name) if pod.spec.node_name else None
            if node is None:
                self.logger.debug("Unable to find node for pod", pod=pod.metadata.name, node=pod.spec.node_name)
                return []
            return node_addresses([node], directives.access or ACCESS_PUBLIC, self.expose_internal_ipv6)
        if directives.endpoints_type == ENDPOINTS_TYPE_HOST_IP or self.publish_host_ip:
            host_ip = pod.status.host_ip if pod.status else None
            return [host_ip] if host_ip else []
        return list(endpoint.addresses[:1])

    def endpoints(self, service, hostname: str, directives: Directives) -> List[Endpoint]:
        namespace, name = service.metadata.namespace, service.metadata.name
        selector = Selector.from_set(service.spec.selector)
        publish_not_ready = bool(service.spec.publish_not_ready_addresses) or self.always_publish_not_ready
        publish_pod_ips = not (self.publish_host_ip or directives.endpoints_type in
                               (ENDPOINTS_TYPE_HOST_IP, ENDPOINTS_TYPE_NODE_EXTERNAL_IP))

        grouped: Dict[Tuple[str, str], List[str]] = {}
        for slc in self.endpoint_slices.by_index(SERVICE_INDEX, f'{namespace}/{name}'):
            if publish_pod_ips and slc.address_type not in POD_ADDRESS_TYPES:
                self.logger.debug("Skipping EndpointSlice with unsupported address type",
                                  slice=slc.metadata.name, address_type=slc.address_type)
                continue
            for ep in slc.endpoints or []:
                ready = ep.conditions.ready if ep.conditions and ep.conditions.ready is not None else True
                if not ready and not publish_not_ready:
                    continue
                ref = ep.target_ref
                if ref is None or ref.kind != 'Pod' or ref.api_version not in (None, '', 'v1'):
                    continue
                pod = self.pods.get(f'{ref.namespace or namespace}/{ref.name}')
                if pod is None:
                    self.logger.debug("Pod referenced by EndpointSlice not found", pod=ref.name, namespace=namespace)
                    continue
                if not selector.matches(pod.metadata.labels):
                    continue

                domains = [hostname]
                if pod.spec.hostname:
                    domains.append(f'{pod.spec.hostname}.{hostname}')
                for target in self._pod_targets(pod, ep, directives):
                    rtype = record_type_for(target)
                    for domain in domains:
                        targets = grouped.setdefault((domain, rtype), [])
                        if target not in targets:
                            targets.append(target)

        endpoints = []
        for (domain, rtype) in sorted(grouped):
            ep = new_endpoint(domain, rtype, grouped[(domain, rtype)], directives.ttl)
            if ep is not None:
                endpoints.append(ep)
        return endpoints
