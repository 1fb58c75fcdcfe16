"""
TCP transport helpers

Every connection gets the same idle timeout, applied to connect,
send and receive alike.
"""

import socket
import logging
from typing import Callable

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[], socket.socket]


def open_connection(host: str, port: int, timeout: float) -> socket.socket:
    """
    Open a TCP connection with an idle timeout.

    Args:
        host: Server host name or address
        port: Server TCP port
        timeout: Idle timeout in seconds for every blocking call

    Returns:
        Connected socket (caller owns it and must close it)

    Raises:
        OSError: socket creation or connect failed
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.settimeout(timeout)
        sock.connect((host, port))
    except OSError:
        sock.close()
        raise

    logger.debug(f"Connected to {host}:{port} (timeout {timeout}s)")
    return sock


def connection_factory(host: str, port: int, timeout: float) -> ConnectionFactory:
    """Build a zero-argument factory that opens a fresh connection per call."""
    def connect() -> socket.socket:
        return open_connection(host, port, timeout)
    return connect
