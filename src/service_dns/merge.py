from typing import Dict, List

from .endpoint import Endpoint, EndpointKey


def merge_endpoints(endpoints: List[Endpoint]) -> List[Endpoint]:
    """Collapse records sharing (name, type, set identifier) into one.

    Targets are unioned; the surviving record keeps the labels and TTL of the
    source that sorts first by provenance. The result is sorted by DNS name, with
    sorted targets.
    """
    merged: Dict[EndpointKey, Endpoint] = {}
    for ep in sorted(endpoints, key=lambda e: e.resource):
        existing = merged.get(ep.key)
        if existing is None:
            merged[ep.key] = Endpoint(
                dns_name=ep.dns_name,
                record_type=ep.record_type,
                targets=list(dict.fromkeys(ep.targets)),
                record_ttl=ep.record_ttl,
                labels=dict(ep.labels),
                set_identifier=ep.set_identifier,
            )
            continue
        for target in ep.targets:
            if target not in existing.targets:
                existing.targets.append(target)

    result = list(merged.values())
    for ep in result:
        ep.targets.sort()
    result.sort(key=lambda e: e.dns_name)
    return result
