from dataclasses import dataclass
import os
from typing import Tuple

from .annotations import COMPATIBILITY_MODES
from .exceptions import ConfigError
from .topology import ServiceTypeFilter
from .utils import split_csv


@dataclass(frozen=True)
class Config:
    namespace: str = ''
    annotation_filter: str = ''
    label_selector: str = ''
    fqdn_template: str = ''
    combine_fqdn_annotation: bool = False
    compatibility: str = ''
    publish_internal: bool = False
    publish_host_ip: bool = False
    always_publish_not_ready_addresses: bool = False
    service_type_filter: Tuple[str, ...] = ()
    ignore_hostname_annotation: bool = False
    resolve_load_balancer_hostname: bool = False
    listen_endpoint_events: bool = False
    expose_internal_ipv6: bool = False
    # runtime
    interval: float = 60.0
    cache_sync_timeout: float = 60.0
    kubeconfig: str = ''

    def __post_init__(self):
        if self.compatibility not in COMPATIBILITY_MODES:
            raise ConfigError(f'unsupported compatibility mode {self.compatibility!r}; '
                              f'expected one of {[m for m in COMPATIBILITY_MODES if m]}')
        # normalise lists passed by callers
        object.__setattr__(self, 'service_type_filter', tuple(self.service_type_filter or ()))
        ServiceTypeFilter(self.service_type_filter)
        if self.interval <= 0:
            raise ConfigError('interval must be positive')
        if self.cache_sync_timeout <= 0:
            raise ConfigError('cache_sync_timeout must be positive')


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f'{name} must be a number, got {value!r}') from None


def load_from_env() -> Config:
    """Load configuration from environment variables with sensible defaults."""
    return Config(
        namespace=os.environ.get('NAMESPACE', ''),
        annotation_filter=os.environ.get('ANNOTATION_FILTER', ''),
        label_selector=os.environ.get('LABEL_FILTER', ''),
        fqdn_template=os.environ.get('FQDN_TEMPLATE', ''),
        combine_fqdn_annotation=_env_bool('COMBINE_FQDN_ANNOTATION'),
        compatibility=os.environ.get('COMPATIBILITY', ''),
        publish_internal=_env_bool('PUBLISH_INTERNAL_SERVICES'),
        publish_host_ip=_env_bool('PUBLISH_HOST_IP'),
        always_publish_not_ready_addresses=_env_bool('ALWAYS_PUBLISH_NOT_READY_ADDRESSES'),
        service_type_filter=tuple(split_csv(os.environ.get('SERVICE_TYPE_FILTER'))),
        ignore_hostname_annotation=_env_bool('IGNORE_HOSTNAME_ANNOTATION'),
        resolve_load_balancer_hostname=_env_bool('RESOLVE_SERVICE_LOAD_BALANCER_HOSTNAME'),
        listen_endpoint_events=_env_bool('LISTEN_ENDPOINT_EVENTS'),
        expose_internal_ipv6=_env_bool('EXPOSE_INTERNAL_IPV6'),
        interval=_env_float('INTERVAL', 60.0),
        cache_sync_timeout=_env_float('CACHE_SYNC_TIMEOUT', 60.0),
        kubeconfig=os.environ.get('KUBECONFIG', ''),
    )
