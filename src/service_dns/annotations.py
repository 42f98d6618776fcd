"""Per-Service configuration read from annotations and labels.

Covers hostnames, target overrides, TTL, access scope, endpoints type,
set identifier, controller identity and the legacy compatibility tables.
"""
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional, Tuple

from .logging_ import get_logger
from .utils import parse_duration, split_csv
from .targets import strip_trailing_dot

ANNOTATION_PREFIX = 'external-dns.alpha.kubernetes.io/'

HOSTNAME_KEY = ANNOTATION_PREFIX + 'hostname'
INTERNAL_HOSTNAME_KEY = ANNOTATION_PREFIX + 'internal-hostname'
TARGET_KEY = ANNOTATION_PREFIX + 'target'
TTL_KEY = ANNOTATION_PREFIX + 'ttl'
ACCESS_KEY = ANNOTATION_PREFIX + 'access'
ENDPOINTS_TYPE_KEY = ANNOTATION_PREFIX + 'endpoints-type'
SET_IDENTIFIER_KEY = ANNOTATION_PREFIX + 'set-identifier'
CONTROLLER_KEY = ANNOTATION_PREFIX + 'controller'

CONTROLLER_VALUE = 'dns-controller'

ACCESS_PUBLIC = 'public'
ACCESS_PRIVATE = 'private'

ENDPOINTS_TYPE_NODE_EXTERNAL_IP = 'NodeExternalIP'
ENDPOINTS_TYPE_HOST_IP = 'HostIP'

TTL_MAXIMUM = 2 ** 31 - 1

# legacy compatibility tables
COMPAT_MATE = 'mate'
COMPAT_MOLECULE = 'molecule'
COMPAT_KOPS = 'kops-dns-controller'
COMPATIBILITY_MODES = ('', COMPAT_MATE, COMPAT_MOLECULE, COMPAT_KOPS)

MATE_HOSTNAME_KEY = 'zalando.org/dnsname'
MOLECULE_LABEL_KEY = 'dns'
MOLECULE_LABEL_VALUE = 'route53'
MOLECULE_HOSTNAME_KEY = 'domainName'
KOPS_EXTERNAL_KEY = 'dns.alpha.kubernetes.io/external'
KOPS_INTERNAL_KEY = 'dns.alpha.kubernetes.io/internal'

logger = get_logger('annotations')


def parse_ttl(value: str) -> int:
    """Parse a TTL written as whole seconds or as a duration string."""
    try:
        return int(parse_duration(value))
    except ValueError:
        try:
            return int(value.strip())
        except ValueError:
            raise ValueError(f'{value!r} is neither an integer nor a duration') from None


def ttl_from_annotations(annotations: Mapping[str, str], resource: str = '') -> Optional[int]:
    """Return the configured TTL in seconds, or None when unset or invalid."""
    value = annotations.get(TTL_KEY)
    if value is None:
        return None
    try:
        ttl = parse_ttl(value)
    except ValueError as e:
        logger.warning("Ignoring invalid TTL annotation", resource=resource, value=value, error=str(e))
        return None
    if ttl < 0 or ttl > TTL_MAXIMUM:
        logger.warning("Ignoring out of range TTL annotation", resource=resource, value=value)
        return None
    return ttl


def hostnames_from_annotations(annotations: Mapping[str, str], key: str = HOSTNAME_KEY) -> List[str]:
    return split_csv(annotations.get(key))


def targets_from_annotations(annotations: Mapping[str, str]) -> List[str]:
    return [strip_trailing_dot(t) for t in split_csv(annotations.get(TARGET_KEY))]


def access_from_annotations(annotations: Mapping[str, str]) -> str:
    return annotations.get(ACCESS_KEY, '')


def endpoints_type_from_annotations(annotations: Mapping[str, str]) -> str:
    return annotations.get(ENDPOINTS_TYPE_KEY, '')


def is_foreign_controller(annotations: Mapping[str, str]) -> bool:
    value = annotations.get(CONTROLLER_KEY)
    return value is not None and value != CONTROLLER_VALUE


@dataclass
class Directives:
    hostnames: List[str] = field(default_factory=list)
    internal_hostnames: List[str] = field(default_factory=list)
    targets: List[str] = field(default_factory=list)
    ttl: Optional[int] = None
    access: str = ''
    endpoints_type: str = ''
    set_identifier: str = ''


def directives_for(service) -> Directives:
    annotations = service.metadata.annotations or {}
    resource = f'service/{service.metadata.namespace}/{service.metadata.name}'
    return Directives(
        hostnames=hostnames_from_annotations(annotations),
        internal_hostnames=hostnames_from_annotations(annotations, INTERNAL_HOSTNAME_KEY),
        targets=targets_from_annotations(annotations),
        ttl=ttl_from_annotations(annotations, resource),
        access=access_from_annotations(annotations),
        endpoints_type=endpoints_type_from_annotations(annotations),
        set_identifier=annotations.get(SET_IDENTIFIER_KEY, ''),
    )


@dataclass(frozen=True)
class HostnameGroup:
    """Hostnames produced by one rule, with how their targets are chosen."""
    hostnames: Tuple[str, ...]
    use_cluster_ip: bool = False
    compatibility: str = ''
    internal: bool = False


@dataclass(frozen=True)
class HostnameRule:
    name: str
    resolve: Callable[[object], List[HostnameGroup]]


def _mate_hostnames(service) -> List[HostnameGroup]:
    if service.spec.type != 'LoadBalancer':
        return []
    hostname = (service.metadata.annotations or {}).get(MATE_HOSTNAME_KEY)
    if not hostname:
        return []
    return [HostnameGroup((hostname,), compatibility=COMPAT_MATE)]


def _molecule_hostnames(service) -> List[HostnameGroup]:
    if service.spec.type != 'LoadBalancer':
        return []
    if (service.metadata.labels or {}).get(MOLECULE_LABEL_KEY) != MOLECULE_LABEL_VALUE:
        return []
    hostnames = split_csv((service.metadata.annotations or {}).get(MOLECULE_HOSTNAME_KEY))
    if not hostnames:
        return []
    return [HostnameGroup(tuple(hostnames), compatibility=COMPAT_MOLECULE)]


def _kops_hostnames(service) -> List[HostnameGroup]:
    if service.spec.type not in ('LoadBalancer', 'NodePort'):
        return []
    annotations = service.metadata.annotations or {}
    external = split_csv(annotations.get(KOPS_EXTERNAL_KEY))
    internal = split_csv(annotations.get(KOPS_INTERNAL_KEY))
    if service.spec.type == 'NodePort' and external and internal:
        logger.warning("Both internal and external kops annotations set on a NodePort service; ignoring",
                       namespace=service.metadata.namespace, service=service.metadata.name)
        return []
    groups = []
    if external:
        groups.append(HostnameGroup(tuple(external), compatibility=COMPAT_KOPS))
    if internal:
        groups.append(HostnameGroup(tuple(internal), compatibility=COMPAT_KOPS, internal=True))
    return groups


LEGACY_TABLES = {
    COMPAT_MATE: _mate_hostnames,
    COMPAT_MOLECULE: _molecule_hostnames,
    COMPAT_KOPS: _kops_hostnames,
}


def hostname_rules(compatibility: str = '', ignore_hostname_annotation: bool = False,
                   template_hostnames: Optional[Callable[[object], List[str]]] = None) -> List[HostnameRule]:
    """Ordered hostname sources, highest precedence first.

    The first rule that produces records wins; the template rule is last.
    """
    rules = []
    if compatibility:
        rules.append(HostnameRule(compatibility, LEGACY_TABLES[compatibility]))
    if not ignore_hostname_annotation:
        def annotation_hostnames(service) -> List[HostnameGroup]:
            annotations = service.metadata.annotations or {}
            hostnames = hostnames_from_annotations(annotations)
            internal = hostnames_from_annotations(annotations, INTERNAL_HOSTNAME_KEY)
            groups = []
            if hostnames:
                groups.append(HostnameGroup(tuple(hostnames)))
            if internal:
                groups.append(HostnameGroup(tuple(internal), use_cluster_ip=True))
            return groups
        rules.append(HostnameRule('annotation', annotation_hostnames))
    if template_hostnames is not None:
        def templated(service) -> List[HostnameGroup]:
            hostnames = template_hostnames(service)
            return [HostnameGroup(tuple(hostnames))] if hostnames else []
        rules.append(HostnameRule('template', templated))
    return rules
