from typing import Optional

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from .logging_ import get_logger


class KubeClient:
    """Holds the CoreV1Api and DiscoveryV1Api used by the watch caches.

    Pass ``core_api``/``discovery_api`` to inject fakes in tests; otherwise the
    in-cluster configuration is loaded, falling back to kubeconfig.
    """
    def __init__(self, core_api: Optional[object] = None, discovery_api: Optional[object] = None,
                 kubeconfig: str = ''):
        self.logger = get_logger('kube-client')
        if core_api is None or discovery_api is None:
            self._load_config(kubeconfig)
        self.core = core_api or client.CoreV1Api()
        self.discovery = discovery_api or client.DiscoveryV1Api()

    def _load_config(self, kubeconfig: str):
        if kubeconfig:
            config.load_kube_config(config_file=kubeconfig)
            self.logger.info("Loaded kubeconfig", path=kubeconfig)
            return
        try:
            config.load_incluster_config()
            self.logger.info("Loaded in-cluster Kubernetes configuration")
        except ConfigException:
            config.load_kube_config()
            self.logger.info("Loaded default kubeconfig")
