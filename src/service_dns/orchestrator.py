import json
import threading
from typing import Callable, List, Optional

from .config import Config, load_from_env
from .endpoint import Endpoint
from .exceptions import ServiceDNSError
from .logging_ import get_logger
from .source import ServiceSource
from .utils import make_signature

Publisher = Callable[[List[Endpoint]], None]


class Orchestrator:
    """Runs reconciliation passes over a ServiceSource.

    Each pass computes the record set and hands it to ``publisher`` only when
    its signature differs from the previous pass.
    """

    def __init__(self, cfg: Optional[Config] = None, source=None, publisher: Optional[Publisher] = None,
                 logger=None):
        self.cfg = cfg or load_from_env()
        self.logger = logger or get_logger('service-dns')
        self.source = source or ServiceSource(self.cfg)
        self.publisher = publisher or self._log_endpoints
        self.last_signature: Optional[str] = None
        self.endpoints: List[Endpoint] = []
        self._changed = threading.Event()

    def _log_endpoints(self, endpoints: List[Endpoint]):
        for ep in endpoints:
            self.logger.info("Endpoint", record=str(ep))

    def run_once(self, cancel: Optional[threading.Event] = None) -> bool:
        try:
            endpoints = self.source.endpoints(cancel)
        except ServiceDNSError as e:
            self.logger.error("Failed to compute endpoints", error=str(e), error_type=type(e).__name__)
            return False

        signature = make_signature(endpoints)
        if signature == self.last_signature:
            self.logger.info("Endpoints unchanged; skipping publish", signature=signature, count=len(endpoints))
            return True

        self.logger.info("Publishing endpoints",
                         count=len(endpoints),
                         previous_signature=self.last_signature,
                         signature=signature)
        self.publisher(endpoints)
        self.endpoints = endpoints
        self.last_signature = signature
        return True

    def notify(self):
        self._changed.set()

    def run(self, stop_event: threading.Event):
        """Reconcile on every change notification or interval until stopped."""
        wired = self.source.add_event_handler(self.notify)
        self.logger.info("Starting reconciliation loop", interval=self.cfg.interval, event_sources=wired)
        try:
            while not stop_event.is_set():
                self._changed.clear()
                self.run_once(cancel=stop_event)
                self._changed.wait(self.cfg.interval)
        finally:
            self.close()
        self.logger.info("Reconciliation loop stopped")

    def close(self):
        self.source.close()


def dump_endpoints(endpoints: List[Endpoint]) -> str:
    return json.dumps([ep.to_dict() for ep in endpoints], indent=2, sort_keys=True)
