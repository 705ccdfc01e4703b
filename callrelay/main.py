# callrelay/main.py
# Entry point for starting the callrelay signaling server.
# Sets up logging, reads the configuration and runs the server until it is told to stop.

import asyncio
import logging
import sys

from callrelay import config
from callrelay import server


def main():
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    logging.info(f"Using HOST={config.HOST}, PORT={config.PORT}")
    try:
        exit_code = asyncio.run(server.start_server(config.HOST, config.PORT))
    except KeyboardInterrupt:
        logging.info("Server stopped manually via KeyboardInterrupt.")
        exit_code = 0
    except Exception:
        logging.exception("Server failed to start or crashed")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
