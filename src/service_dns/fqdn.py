from typing import List, Optional

import jinja2

from .exceptions import ConfigError, TemplateError
from .targets import strip_trailing_dot


def parse_template(source: Optional[str]) -> Optional[jinja2.Template]:
    """Compile an FQDN template, e.g. ``{{ name }}.{{ namespace }}.example.org``.

    Returns None when no template is configured.
    """
    if not source:
        return None
    env = jinja2.Environment(undefined=jinja2.StrictUndefined, autoescape=False, keep_trailing_newline=False)
    try:
        return env.from_string(source)
    except jinja2.TemplateSyntaxError as e:
        raise ConfigError(f'invalid FQDN template {source!r}: {e}') from e


def template_context(service) -> dict:
    meta = service.metadata
    return {
        'name': meta.name,
        'namespace': meta.namespace,
        'labels': dict(meta.labels or {}),
        'annotations': dict(meta.annotations or {}),
        'type': service.spec.type if service.spec else None,
        'service': service,
    }


def exec_template(template: jinja2.Template, service) -> List[str]:
    """Render the template for a Service and return the hostnames it yields."""
    try:
        rendered = template.render(**template_context(service))
    except jinja2.UndefinedError as e:
        raise TemplateError(
            f'failed to apply FQDN template to service {service.metadata.namespace}/{service.metadata.name}: {e}'
        ) from e
    hostnames = []
    for hostname in rendered.split(','):
        hostname = strip_trailing_dot(hostname.strip())
        if hostname:
            hostnames.append(hostname)
    return hostnames
