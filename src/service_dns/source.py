"""Translate Services into DNS records."""
import socket
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, List, Optional

from . import labels
from .annotations import (COMPAT_KOPS, CONTROLLER_KEY, Directives, HostnameGroup, directives_for,
                          hostname_rules, is_foreign_controller)
from .config import Config
from .endpoint import RESOURCE_LABEL_KEY, Endpoint, new_endpoint
from .exceptions import CacheSyncError, TranslationCancelled
from .fqdn import exec_template, parse_template
from .headless import HeadlessPodResolver
from .informers import WatchCacheFactory
from .kube import KubeClient
from .logging_ import get_logger
from .merge import merge_endpoints
from .nodes import NodeTargetResolver
from .targets import RECORD_TYPE_SRV, split_by_record_type, strip_trailing_dot
from .topology import (CLUSTER_IP, EXTERNAL_NAME, LOAD_BALANCER, NODE_PORT, ServiceTypeFilter,
                       WatchTopology)
from .utils import split_csv

CLUSTER_IP_NONE = 'None'

Resolver = Callable[[str], List[str]]


def resolve_hostname(hostname: str) -> List[str]:
    infos = socket.getaddrinfo(hostname, None, proto=socket.IPPROTO_TCP)
    return list(dict.fromkeys(info[4][0] for info in infos))


def cluster_ips(service) -> List[str]:
    if service.spec.cluster_i_ps:
        ips = list(service.spec.cluster_i_ps)
    else:
        ips = split_csv(service.spec.cluster_ip)
    return [ip for ip in ips if ip != CLUSTER_IP_NONE]


def service_key(service) -> str:
    return f'{service.metadata.namespace}/{service.metadata.name}'


def endpoints_for_hostname(hostname: str, targets: List[str], ttl: Optional[int] = None) -> List[Endpoint]:
    endpoints = []
    for record_type, values in split_by_record_type(targets).items():
        ep = new_endpoint(hostname, record_type, values, ttl)
        if ep is not None:
            endpoints.append(ep)
    return endpoints


class ServiceSource:
    """Computes the DNS records for every Service visible through the caches.

    Construction validates the configuration, creates only the caches the
    service type filter needs and waits for them to sync. ``endpoints`` can
    then be called concurrently; each call reads a snapshot of the caches.
    """

    def __init__(self, cfg: Config, caches: Optional[WatchCacheFactory] = None,
                 resolver: Optional[Resolver] = None, kube: Optional[KubeClient] = None):
        self.cfg = cfg
        self.logger = get_logger('service-source')
        self.template = parse_template(cfg.fqdn_template)
        self.annotation_selector = labels.parse(cfg.annotation_filter)
        self.label_selector = labels.parse(cfg.label_selector)
        self.type_filter = ServiceTypeFilter(cfg.service_type_filter)
        self.topology = WatchTopology.from_filter(self.type_filter, cfg.listen_endpoint_events)

        if caches is None:
            kube = kube or KubeClient(kubeconfig=cfg.kubeconfig)
            caches = WatchCacheFactory(kube.core, kube.discovery, namespace=cfg.namespace)
        self.caches = caches
        self.watches = self.topology.build(caches)
        caches.start()
        if not caches.wait_for_sync(cfg.cache_sync_timeout):
            raise CacheSyncError(f'caches did not sync within {cfg.cache_sync_timeout}s')

        self.nodes = None
        if self.watches.nodes is not None:
            self.nodes = NodeTargetResolver(self.watches.nodes, self.watches.pods, cfg.expose_internal_ipv6)
        self.headless = None
        if self.watches.endpoint_slices is not None:
            self.headless = HeadlessPodResolver(
                self.watches.endpoint_slices, self.watches.pods, self.watches.nodes,
                publish_host_ip=cfg.publish_host_ip,
                always_publish_not_ready=cfg.always_publish_not_ready_addresses,
                expose_internal_ipv6=cfg.expose_internal_ipv6,
            )

        self.resolve_hostname = resolver or resolve_hostname
        self._lookups = ThreadPoolExecutor(max_workers=4, thread_name_prefix='lb-lookup')
        self.rules = hostname_rules(
            cfg.compatibility,
            cfg.ignore_hostname_annotation,
            self._template_hostnames if self.template is not None else None,
        )
        self.logger.info("Service source ready",
                         namespace=cfg.namespace or '*',
                         type_filter=sorted(self.type_filter.types),
                         topology=self.topology)

    # public API

    def endpoints(self, cancel: Optional[threading.Event] = None) -> List[Endpoint]:
        """Return the merged records for all matching Services.

        Raises TemplateError if the FQDN template fails for any Service and
        TranslationCancelled if ``cancel`` is set while the call is running.
        """
        services = self._candidate_services()
        endpoints: List[Endpoint] = []
        for svc in services:
            self._check_cancelled(cancel)
            if is_foreign_controller(svc.metadata.annotations or {}):
                self.logger.warning("Skipping service with foreign controller annotation", service=service_key(svc),
                                    controller=svc.metadata.annotations[CONTROLLER_KEY])
                continue
            svc_endpoints = self._service_endpoints(svc, cancel)
            if not svc_endpoints:
                self.logger.debug("No endpoints could be generated", service=service_key(svc))
                continue
            resource = f'service/{service_key(svc)}'
            for ep in svc_endpoints:
                ep.labels[RESOURCE_LABEL_KEY] = resource
            self.logger.debug("Generated endpoints", service=service_key(svc),
                              endpoints=[str(ep) for ep in svc_endpoints])
            endpoints.extend(svc_endpoints)
        return merge_endpoints(endpoints)

    def add_event_handler(self, handler: Callable[[], None]) -> int:
        """Call ``handler`` whenever a watched object changes; returns the number of caches wired."""
        return self.watches.add_event_handler(handler)

    def close(self):
        self._lookups.shutdown(wait=False)
        self.caches.stop()

    # selection

    def _candidate_services(self) -> List[object]:
        services = self.watches.services.list()
        if self.cfg.namespace:
            services = [s for s in services if s.metadata.namespace == self.cfg.namespace]
        if not self.label_selector.empty():
            services = [s for s in services if self.label_selector.matches(s.metadata.labels)]
        if not self.annotation_selector.empty():
            services = [s for s in services if self.annotation_selector.matches(s.metadata.annotations)]
        services = self.type_filter.filter(services)
        return sorted(services, key=service_key)

    # per service

    def _template_hostnames(self, service) -> List[str]:
        return exec_template(self.template, service)

    def _service_endpoints(self, svc, cancel) -> List[Endpoint]:
        directives = directives_for(svc)
        endpoints: List[Endpoint] = []
        winner = ''
        for rule in self.rules:
            generated = []
            for group in rule.resolve(svc):
                generated.extend(self._group_endpoints(svc, group, directives, cancel))
            if generated:
                endpoints, winner = generated, rule.name
                break

        if self.cfg.combine_fqdn_annotation and self.template is not None and winner not in ('', 'template'):
            for hostname in self._template_hostnames(svc):
                endpoints.extend(self._generate_endpoints(svc, hostname, directives, False, cancel))

        for ep in endpoints:
            ep.set_identifier = directives.set_identifier
        return endpoints

    def _group_endpoints(self, svc, group: HostnameGroup, directives: Directives, cancel) -> List[Endpoint]:
        if group.compatibility == COMPAT_KOPS and svc.spec.type == NODE_PORT:
            if self.nodes is None:
                return []
            targets = self.nodes.role_targets(internal=group.internal)
            endpoints = []
            for hostname in group.hostnames:
                endpoints.extend(endpoints_for_hostname(hostname, targets, directives.ttl))
            return endpoints
        endpoints = []
        for hostname in group.hostnames:
            endpoints.extend(self._generate_endpoints(svc, hostname, directives, group.use_cluster_ip, cancel))
        return endpoints

    def _generate_endpoints(self, svc, hostname: str, directives: Directives, use_cluster_ip: bool,
                            cancel) -> List[Endpoint]:
        hostname = strip_trailing_dot(hostname)
        targets = list(directives.targets)
        extra: List[Endpoint] = []

        if not targets:
            service_type = svc.spec.type or CLUSTER_IP
            if service_type == LOAD_BALANCER:
                if use_cluster_ip:
                    targets = cluster_ips(svc)
                else:
                    targets = self._load_balancer_targets(svc, cancel)
            elif service_type == CLUSTER_IP:
                if svc.spec.cluster_ip == CLUSTER_IP_NONE:
                    if self.headless is None:
                        return []
                    return self.headless.endpoints(svc, hostname, directives)
                if use_cluster_ip or self.cfg.publish_internal:
                    targets = cluster_ips(svc)
            elif service_type == NODE_PORT:
                if use_cluster_ip:
                    targets = cluster_ips(svc)
                elif self.nodes is not None:
                    targets = self.nodes.targets(svc, directives.access)
                    extra = self._srv_endpoints(svc, hostname, directives.ttl)
            elif service_type == EXTERNAL_NAME:
                targets = list(svc.spec.external_i_ps or []) or [svc.spec.external_name]

        targets = [t for t in targets if t]
        return endpoints_for_hostname(hostname, targets, directives.ttl) + extra

    def _srv_endpoints(self, svc, hostname: str, ttl: Optional[int]) -> List[Endpoint]:
        endpoints = []
        for port in svc.spec.ports or []:
            if not port.node_port:
                continue
            protocol = (port.protocol or 'TCP').lower()
            name = f'_{svc.metadata.name}._{protocol}.{hostname}'
            ep = new_endpoint(name, RECORD_TYPE_SRV, [f'0 50 {port.node_port} {hostname}'], ttl)
            if ep is not None:
                endpoints.append(ep)
        return endpoints

    def _load_balancer_targets(self, svc, cancel) -> List[str]:
        if svc.spec.external_i_ps:
            return list(svc.spec.external_i_ps)
        status = svc.status.load_balancer if svc.status else None
        targets = []
        for ingress in (status.ingress if status else None) or []:
            if ingress.ip:
                targets.append(ingress.ip)
            if ingress.hostname:
                if self.cfg.resolve_load_balancer_hostname:
                    targets.extend(self._resolve(ingress.hostname, svc, cancel))
                else:
                    targets.append(ingress.hostname)
        return targets

    def _resolve(self, hostname: str, svc, cancel) -> List[str]:
        future = self._lookups.submit(self.resolve_hostname, hostname)
        while not future.done():
            if cancel is not None and cancel.is_set():
                future.cancel()
                raise TranslationCancelled(f'lookup of {hostname} cancelled')
            wait([future], timeout=0.1)
        try:
            return list(future.result())
        except (OSError, UnicodeError) as e:
            self.logger.error("Unable to resolve load balancer hostname",
                              hostname=hostname, service=service_key(svc),
                              error=str(e), error_type=type(e).__name__)
            return []

    @staticmethod
    def _check_cancelled(cancel: Optional[threading.Event]):
        if cancel is not None and cancel.is_set():
            raise TranslationCancelled('translation cancelled')
