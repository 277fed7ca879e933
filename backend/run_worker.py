"""Run the session/revocation sweeper outside the API process.

Usage: python run_worker.py [--once]
"""

import logging
import sys
import time

from feedauth.services.maintenance_worker import maintenance_worker

logger = logging.getLogger("feedauth.worker")


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if "--once" in argv:
        result = maintenance_worker.run_once()
        logger.info(f"Single maintenance pass: {result}")
        return 0

    maintenance_worker.start()
    try:
        while maintenance_worker.is_running():
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        maintenance_worker.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
