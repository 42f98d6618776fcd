import ipaddress
import re
from enum import Enum
from typing import Dict, Iterable, List

RECORD_TYPE_A = 'A'
RECORD_TYPE_AAAA = 'AAAA'
RECORD_TYPE_CNAME = 'CNAME'
RECORD_TYPE_SRV = 'SRV'
RECORD_TYPE_TXT = 'TXT'

MAX_NAME_LENGTH = 253
MAX_LABEL_LENGTH = 63

_LABEL = re.compile(r'^(\*|[A-Za-z0-9_](?:[A-Za-z0-9_-]*[A-Za-z0-9_])?)$')


class TargetKind(Enum):
    IPV4 = 'ipv4'
    IPV6 = 'ipv6'
    HOSTNAME = 'hostname'


def classify_target(target: str) -> TargetKind:
    try:
        address = ipaddress.ip_address(target)
    except ValueError:
        return TargetKind.HOSTNAME
    if address.version == 4:
        return TargetKind.IPV4
    return TargetKind.IPV6


_RECORD_TYPES = {
    TargetKind.IPV4: RECORD_TYPE_A,
    TargetKind.IPV6: RECORD_TYPE_AAAA,
    TargetKind.HOSTNAME: RECORD_TYPE_CNAME,
}


def record_type_for(target: str) -> str:
    return _RECORD_TYPES[classify_target(target)]


def split_by_record_type(targets: Iterable[str]) -> Dict[str, List[str]]:
    """Group targets into A, AAAA and CNAME buckets, keeping input order.

    Only non-empty buckets are returned; key order is A, AAAA, CNAME.
    """
    buckets: Dict[str, List[str]] = {RECORD_TYPE_A: [], RECORD_TYPE_AAAA: [], RECORD_TYPE_CNAME: []}
    for target in targets:
        buckets[record_type_for(target)].append(target)
    return {rtype: values for rtype, values in buckets.items() if values}


def strip_trailing_dot(name: str) -> str:
    if name.endswith('.'):
        return name[:-1]
    return name


def is_valid_dns_name(name: str) -> bool:
    if not name or len(name) > MAX_NAME_LENGTH:
        return False
    for label in name.split('.'):
        if not label or len(label) > MAX_LABEL_LENGTH:
            return False
        if not _LABEL.match(label):
            return False
    return True
