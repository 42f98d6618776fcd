import argparse
import signal
import sys
import threading

from . import Orchestrator, load_from_env, setup_logging
from .exceptions import ServiceDNSError
from .orchestrator import dump_endpoints


def main(argv=None):
    parser = argparse.ArgumentParser(prog='service-dns',
                                     description='Compute DNS records for Kubernetes Services')
    parser.add_argument('--once', action='store_true', help='Compute the record set once, print it as JSON and exit')
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    logger = setup_logging('service-dns')
    try:
        cfg = load_from_env()
        orch = Orchestrator(cfg=cfg, logger=logger,
                            publisher=(lambda eps: print(dump_endpoints(eps))) if args.once else None)
    except ServiceDNSError as e:
        logger.error("Startup failed", error=str(e), error_type=type(e).__name__)
        sys.exit(2)

    if args.once:
        ok = orch.run_once()
        orch.close()
        sys.exit(0 if ok else 1)

    stop = threading.Event()

    def _stop(signum, frame):
        logger.info("Received signal; shutting down", signal=signum)
        stop.set()
        orch.notify()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    orch.run(stop)
    sys.exit(0)


if __name__ == '__main__':
    main()
