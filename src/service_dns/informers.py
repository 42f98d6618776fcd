"""Watch caches mirroring Services, Nodes, Pods and EndpointSlices.

Each cache lists its kind once and then follows a watch stream, keeping a
local keyed store plus derived indices. Readers never call the API server.
"""
import threading
from typing import Callable, Dict, List, Optional, Set

from kubernetes import client, watch
from kubernetes.client.rest import ApiException

from .exceptions import IndexerError
from .logging_ import get_logger
from .utils import retry_with_backoff

SERVICE_NAME_LABEL = 'kubernetes.io/service-name'
SERVICE_INDEX = 'service'
NAMESPACE_INDEX = 'namespace'

IndexFunc = Callable[[object], List[str]]
EventHandler = Callable[[], None]


def object_key(obj) -> str:
    meta = obj.metadata
    if meta.namespace:
        return f'{meta.namespace}/{meta.name}'
    return meta.name


def endpoint_slice_service_index(obj) -> List[str]:
    """Index EndpointSlices by ``<namespace>/<owning service name>``."""
    if not isinstance(obj, client.V1EndpointSlice):
        raise TypeError(f'expected V1EndpointSlice but got {type(obj).__name__} instead')
    service_name = (obj.metadata.labels or {}).get(SERVICE_NAME_LABEL)
    if not service_name:
        return []
    return [f'{obj.metadata.namespace}/{service_name}']


def namespace_index(obj) -> List[str]:
    return [obj.metadata.namespace or '']


class WatchCache:
    def __init__(self, kind: str, list_func: Callable, list_kwargs: Optional[dict] = None,
                 indexers: Optional[Dict[str, IndexFunc]] = None, timeout_seconds: int = 300):
        self.kind = kind
        self._list_func = list_func
        self._list_kwargs = dict(list_kwargs or {})
        self._indexers = dict(indexers or {})
        self._timeout_seconds = timeout_seconds
        self._items: Dict[str, object] = {}
        self._indices: Dict[str, Dict[str, Set[str]]] = {name: {} for name in self._indexers}
        self._indexed: Dict[str, Dict[str, List[str]]] = {}
        self._handlers: List[EventHandler] = []
        self._lock = threading.RLock()
        self._synced = threading.Event()
        self._resource_version: Optional[str] = None
        self.logger = get_logger('watch-cache').bind(kind=kind)

    # reads

    def get(self, key: str):
        with self._lock:
            return self._items.get(key)

    def list(self) -> List[object]:
        with self._lock:
            return list(self._items.values())

    def by_index(self, index_name: str, value: str) -> List[object]:
        with self._lock:
            if index_name not in self._indices:
                raise KeyError(f'index {index_name!r} does not exist on the {self.kind} cache')
            keys = self._indices[index_name].get(value, ())
            return [self._items[k] for k in sorted(keys)]

    def has_synced(self) -> bool:
        return self._synced.is_set()

    def wait_for_sync(self, timeout: Optional[float] = None) -> bool:
        return self._synced.wait(timeout)

    # writes

    def _index_values(self, key: str, obj) -> Dict[str, List[str]]:
        values = {}
        for name, func in self._indexers.items():
            try:
                values[name] = func(obj)
            except Exception as e:
                raise IndexerError(f'unable to calculate an index entry for key "{key}" on index "{name}": {e}') from e
        return values

    def _unindex(self, key: str):
        for name, index_values in self._indexed.pop(key, {}).items():
            index = self._indices[name]
            for value in index_values:
                keys = index.get(value)
                if keys is None:
                    continue
                keys.discard(key)
                if not keys:
                    del index[value]

    def _store(self, key: str, obj):
        values = self._index_values(key, obj)
        self._unindex(key)
        self._items[key] = obj
        for name, index_values in values.items():
            for value in index_values:
                self._indices[name].setdefault(value, set()).add(key)
        self._indexed[key] = values

    def upsert(self, obj):
        key = object_key(obj)
        with self._lock:
            self._store(key, obj)

    def delete(self, obj):
        key = object_key(obj)
        with self._lock:
            self._unindex(key)
            self._items.pop(key, None)

    def replace(self, objs: List[object]):
        with self._lock:
            self._items = {}
            self._indices = {name: {} for name in self._indexers}
            self._indexed = {}
            for obj in objs:
                self._store(object_key(obj), obj)
        self._synced.set()

    # notifications

    def add_event_handler(self, handler: EventHandler):
        with self._lock:
            self._handlers.append(handler)

    def _notify(self, event_type: str, obj=None):
        if obj is not None:
            meta = obj.metadata
            self.logger.debug("Event received", event_type=event_type, namespace=meta.namespace, name=meta.name)
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler()
            except Exception as e:
                self.logger.error("Event handler failed", error=str(e), error_type=type(e).__name__)

    # list and watch

    @retry_with_backoff(attempts=3, delay=0.5)
    def _list(self):
        return self._list_func(**self._list_kwargs)

    def sync(self) -> Optional[str]:
        """List every object, replace the store and return the resource version."""
        result = self._list()
        items = list(result.items or [])
        self.replace(items)
        meta = getattr(result, 'metadata', None)
        self._resource_version = getattr(meta, 'resource_version', None)
        self.logger.debug("Cache synced", count=len(items), resource_version=self._resource_version)
        self._notify('SYNC')
        return self._resource_version

    def apply_event(self, event: dict):
        event_type = event['type']
        obj = event['object']
        if event_type in ('ADDED', 'MODIFIED'):
            self.upsert(obj)
        elif event_type == 'DELETED':
            self.delete(obj)
        elif event_type == 'BOOKMARK':
            pass
        else:
            self.logger.warning("Unexpected watch event", event_type=event_type)
            return
        meta = getattr(obj, 'metadata', None)
        if getattr(meta, 'resource_version', None):
            self._resource_version = meta.resource_version
        if event_type != 'BOOKMARK':
            self._notify(event_type, obj)

    def run(self, stop_event: threading.Event):
        """List then watch until ``stop_event`` is set."""
        while not stop_event.is_set():
            try:
                if self._resource_version is None:
                    self.sync()
                w = watch.Watch()
                for event in w.stream(self._list_func, resource_version=self._resource_version,
                                      timeout_seconds=self._timeout_seconds, **self._list_kwargs):
                    self.apply_event(event)
                    if stop_event.is_set():
                        w.stop()
                        break
            except ApiException as e:
                if e.status == 410:
                    self.logger.info("Watch expired; relisting")
                else:
                    self.logger.error("Watch failed", error=str(e), error_type=type(e).__name__)
                    stop_event.wait(1.0)
                self._resource_version = None
            except Exception as e:
                self.logger.error("Watch failed", error=str(e), error_type=type(e).__name__)
                self._resource_version = None
                stop_event.wait(1.0)


class WatchCacheFactory:
    """Creates and owns the shared caches, one per object kind.

    Caches are created on first request; ``start`` begins populating every
    cache created so far. With ``watch=False`` caches are listed once,
    synchronously.
    """
    def __init__(self, core_api=None, discovery_api=None, namespace: str = '', watch: bool = True):
        self.core_api = core_api
        self.discovery_api = discovery_api
        self.namespace = namespace
        self.watch = watch
        self._caches: Dict[str, WatchCache] = {}
        self._started: Set[str] = set()
        self._threads: List[threading.Thread] = []
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self.logger = get_logger('watch-cache-factory')

    def _cache(self, kind: str, build: Callable[[], WatchCache]) -> WatchCache:
        with self._lock:
            if kind not in self._caches:
                self._caches[kind] = build()
            return self._caches[kind]

    def _namespaced(self, all_func, namespaced_func):
        if self.namespace:
            return namespaced_func, {'namespace': self.namespace}
        return all_func, {}

    def services(self) -> WatchCache:
        func, kwargs = self._namespaced(self.core_api.list_service_for_all_namespaces,
                                        self.core_api.list_namespaced_service)
        return self._cache('Service', lambda: WatchCache('Service', func, kwargs))

    def nodes(self) -> WatchCache:
        return self._cache('Node', lambda: WatchCache('Node', self.core_api.list_node))

    def pods(self) -> WatchCache:
        func, kwargs = self._namespaced(self.core_api.list_pod_for_all_namespaces,
                                        self.core_api.list_namespaced_pod)
        return self._cache('Pod', lambda: WatchCache('Pod', func, kwargs,
                                                     indexers={NAMESPACE_INDEX: namespace_index}))

    def endpoint_slices(self) -> WatchCache:
        func, kwargs = self._namespaced(self.discovery_api.list_endpoint_slice_for_all_namespaces,
                                        self.discovery_api.list_namespaced_endpoint_slice)
        return self._cache('EndpointSlice', lambda: WatchCache('EndpointSlice', func, kwargs,
                                                               indexers={SERVICE_INDEX: endpoint_slice_service_index}))

    def start(self):
        with self._lock:
            pending = [(kind, cache) for kind, cache in self._caches.items() if kind not in self._started]
            self._started.update(kind for kind, _ in pending)
        for kind, cache in pending:
            if not self.watch:
                cache.sync()
                continue
            t = threading.Thread(target=cache.run, args=(self._stop,), name=f'watch-{kind.lower()}', daemon=True)
            t.start()
            self._threads.append(t)
            self.logger.info("Started watch", kind=kind, namespace=self.namespace or '*')

    def wait_for_sync(self, timeout: Optional[float] = None) -> bool:
        with self._lock:
            caches = list(self._caches.values())
        return all(cache.wait_for_sync(timeout) for cache in caches)

    def stop(self):
        if self._stop.is_set():
            return
        self._stop.set()
        self.logger.info("Stopping watches", caches=sorted(self._caches), namespace=self.namespace or '*')
