"""Test child: the hello server, but it takes ``exit_delay_ms`` to stop.

Usage: slow_exit_server.py [exit_delay_ms]

On SIGINT or SIGTERM it keeps running for ``exit_delay_ms`` (default 500)
and then exits with code 0.
"""
import os
import signal
import sys
import time
from http.server import HTTPServer

from hello_server import HelloHandler, listening_socket


def main(argv):
    exit_delay = (int(argv[1]) if len(argv) > 1 else 500) / 1000.0

    def _stop(signum, frame):
        signal.signal(signal.SIGINT, signal.SIG_IGN)
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
        time.sleep(exit_delay)
        os._exit(0)

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    sock = listening_socket()
    httpd = HTTPServer(sock.getsockname()[:2], HelloHandler, bind_and_activate=False)
    httpd.socket = sock
    httpd.serve_forever()


if __name__ == "__main__":
    main(sys.argv)
