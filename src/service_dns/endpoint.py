from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional

from .logging_ import get_logger
from .targets import is_valid_dns_name, strip_trailing_dot

RESOURCE_LABEL_KEY = 'resource'

logger = get_logger('endpoint')


class EndpointKey(NamedTuple):
    dns_name: str
    record_type: str
    set_identifier: str


@dataclass
class Endpoint:
    """A single DNS record: one name, one type, any number of targets.

    ``record_ttl`` is None when no TTL was configured; an explicit ``0`` is a
    configured TTL of zero seconds.
    """
    dns_name: str
    record_type: str
    targets: List[str] = field(default_factory=list)
    record_ttl: Optional[int] = None
    labels: Dict[str, str] = field(default_factory=dict)
    set_identifier: str = ''

    @property
    def ttl_configured(self) -> bool:
        return self.record_ttl is not None

    @property
    def key(self) -> EndpointKey:
        return EndpointKey(self.dns_name, self.record_type, self.set_identifier)

    @property
    def resource(self) -> str:
        return self.labels.get(RESOURCE_LABEL_KEY, '')

    def to_dict(self) -> dict:
        data = {
            'dnsName': self.dns_name,
            'recordType': self.record_type,
            'targets': list(self.targets),
        }
        if self.ttl_configured:
            data['recordTTL'] = self.record_ttl
        if self.set_identifier:
            data['setIdentifier'] = self.set_identifier
        if self.labels:
            data['labels'] = dict(self.labels)
        return data

    def __str__(self) -> str:
        ttl = self.record_ttl if self.ttl_configured else '-'
        parts = [self.dns_name, str(ttl), 'IN', self.record_type]
        if self.set_identifier:
            parts.append(self.set_identifier)
        return ' '.join(parts) + f' {self.targets}'


def new_endpoint(dns_name: str, record_type: str, targets: List[str],
                 ttl: Optional[int] = None) -> Optional[Endpoint]:
    """Build an Endpoint, or return None if ``dns_name`` is not a legal DNS name.

    One trailing dot is removed from the name and from every target.
    """
    name = strip_trailing_dot(dns_name)
    if not is_valid_dns_name(name):
        logger.debug("Dropping invalid DNS name", dns_name=dns_name, record_type=record_type)
        return None
    return Endpoint(
        dns_name=name,
        record_type=record_type,
        targets=[strip_trailing_dot(t) for t in targets],
        record_ttl=ttl,
    )
