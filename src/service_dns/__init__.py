from .logging_ import get_logger
from .config import Config, load_from_env
from .endpoint import Endpoint
from .exceptions import ServiceDNSError, ConfigError, TemplateError, TranslationCancelled
from .informers import WatchCacheFactory
from .orchestrator import Orchestrator
from .source import ServiceSource


def setup_logging(name: str = __name__):
    """Returns a configured structured logger."""
    return get_logger(name)


__all__ = [
    'Orchestrator', 'ServiceSource', 'WatchCacheFactory', 'Endpoint', 'Config', 'load_from_env',
    'setup_logging', 'ServiceDNSError', 'ConfigError', 'TemplateError', 'TranslationCancelled',
]
