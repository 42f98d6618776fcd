class ServiceDNSError(Exception):
    """Base class for errors raised by the service translator."""


class ConfigError(ServiceDNSError):
    """Invalid construction-time configuration."""


class TemplateError(ServiceDNSError):
    """An FQDN template could not be evaluated for a Service."""


class CacheSyncError(ServiceDNSError):
    pass


class IndexerError(ServiceDNSError):
    pass


class TranslationCancelled(ServiceDNSError):
    pass
