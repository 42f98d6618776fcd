"""Shared fixtures: a simulated cluster feeding caches that never watch."""
import datetime
from typing import Dict, List, Optional, Tuple
from unittest.mock import Mock

import pytest
from kubernetes import client

from service_dns.config import Config
from service_dns.informers import SERVICE_NAME_LABEL, WatchCacheFactory
from service_dns.source import ServiceSource


def make_service(name: str, namespace: str = 'testing', type: str = 'LoadBalancer',
                 annotations: Optional[Dict[str, str]] = None, labels: Optional[Dict[str, str]] = None,
                 cluster_ip: Optional[str] = None, cluster_ips: Optional[List[str]] = None,
                 external_ips: Optional[List[str]] = None, lb_ips: Tuple[str, ...] = (),
                 lb_hostnames: Tuple[str, ...] = (), selector: Optional[Dict[str, str]] = None,
                 ports: Optional[List[client.V1ServicePort]] = None, traffic_policy: Optional[str] = None,
                 external_name: Optional[str] = None, publish_not_ready: Optional[bool] = None):
    ingress = [client.V1LoadBalancerIngress(ip=ip) for ip in lb_ips]
    ingress += [client.V1LoadBalancerIngress(hostname=h) for h in lb_hostnames]
    return client.V1Service(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace,
                                     annotations=annotations or {}, labels=labels or {}),
        spec=client.V1ServiceSpec(
            type=type,
            cluster_ip=cluster_ip,
            cluster_i_ps=cluster_ips,
            external_i_ps=external_ips,
            selector=selector,
            ports=ports,
            external_traffic_policy=traffic_policy,
            external_name=external_name,
            publish_not_ready_addresses=publish_not_ready,
        ),
        status=client.V1ServiceStatus(load_balancer=client.V1LoadBalancerStatus(ingress=ingress)),
    )


def make_node(name: str, addresses: List[Tuple[str, str]], labels: Optional[Dict[str, str]] = None):
    return client.V1Node(
        metadata=client.V1ObjectMeta(name=name, labels=labels or {}),
        status=client.V1NodeStatus(addresses=[client.V1NodeAddress(type=t, address=a) for t, a in addresses]),
    )


def make_pod(name: str, namespace: str = 'testing', node: Optional[str] = None, hostname: Optional[str] = None,
             ip: Optional[str] = None, host_ip: Optional[str] = None, phase: str = 'Running', ready: bool = True,
             deleting: bool = False, labels: Optional[Dict[str, str]] = None,
             annotations: Optional[Dict[str, str]] = None):
    deletion = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc) if deleting else None
    return client.V1Pod(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=labels or {},
                                     annotations=annotations or {}, deletion_timestamp=deletion),
        spec=client.V1PodSpec(containers=[], node_name=node, hostname=hostname),
        status=client.V1PodStatus(
            phase=phase,
            pod_ip=ip,
            host_ip=host_ip,
            conditions=[client.V1PodCondition(type='Ready', status='True' if ready else 'False')],
        ),
    )


def make_slice(service: str, endpoints: List[Tuple[str, Optional[str], bool]], namespace: str = 'testing',
               address_type: str = 'IPv4', name: Optional[str] = None):
    """Build an EndpointSlice from (address, pod name, ready) triples."""
    return client.V1EndpointSlice(
        metadata=client.V1ObjectMeta(name=name or f'{service}-{address_type.lower()}', namespace=namespace,
                                     labels={SERVICE_NAME_LABEL: service}),
        address_type=address_type,
        endpoints=[
            client.V1Endpoint(
                addresses=[address],
                conditions=client.V1EndpointConditions(ready=ready),
                target_ref=client.V1ObjectReference(kind='Pod', name=pod, namespace=namespace) if pod else None,
            )
            for address, pod, ready in endpoints
        ],
    )


class ClusterSimulator:
    """Holds cluster objects and serves them through mocked API clients."""

    def __init__(self):
        self.services: List[object] = []
        self.nodes: List[object] = []
        self.pods: List[object] = []
        self.endpoint_slices: List[object] = []

        self.core_api = Mock()
        self.discovery_api = Mock()
        self.core_api.list_service_for_all_namespaces.side_effect = \
            lambda **kw: client.V1ServiceList(items=list(self.services))
        self.core_api.list_namespaced_service.side_effect = \
            lambda namespace, **kw: client.V1ServiceList(items=self._in(self.services, namespace))
        self.core_api.list_node.side_effect = \
            lambda **kw: client.V1NodeList(items=list(self.nodes))
        self.core_api.list_pod_for_all_namespaces.side_effect = \
            lambda **kw: client.V1PodList(items=list(self.pods))
        self.core_api.list_namespaced_pod.side_effect = \
            lambda namespace, **kw: client.V1PodList(items=self._in(self.pods, namespace))
        self.discovery_api.list_endpoint_slice_for_all_namespaces.side_effect = \
            lambda **kw: client.V1EndpointSliceList(items=list(self.endpoint_slices))
        self.discovery_api.list_namespaced_endpoint_slice.side_effect = \
            lambda namespace, **kw: client.V1EndpointSliceList(items=self._in(self.endpoint_slices, namespace))

    @staticmethod
    def _in(objs, namespace):
        return [o for o in objs if o.metadata.namespace == namespace]

    def factory(self, namespace: str = '') -> WatchCacheFactory:
        return WatchCacheFactory(core_api=self.core_api, discovery_api=self.discovery_api,
                                 namespace=namespace, watch=False)

    def source(self, resolver=None, **options) -> ServiceSource:
        cfg = Config(**options)
        return ServiceSource(cfg, caches=self.factory(cfg.namespace), resolver=resolver)


@pytest.fixture
def cluster():
    return ClusterSimulator()


def summarize(endpoints):
    """Endpoints as comparable tuples: (name, type, targets, ttl, set identifier)."""
    return [(ep.dns_name, ep.record_type, ep.targets, ep.record_ttl, ep.set_identifier) for ep in endpoints]
