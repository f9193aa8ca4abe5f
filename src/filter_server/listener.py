"""Contains the construction of the listening socket."""

import socket

from filter_server import globals as G, logger
from filter_server.utils import FatalError, print_os_error

BACKLOG = 2
"""The number of pending connections the kernel queues for us."""

def create_listener(port: int) -> socket.socket:
    """
    Creates an IPv4 TCP socket bound to the given port on all local addresses
    and marks it as listening. The first address that can be bound is used.

    Parameters
    ----------
    port
        The local port. 0 lets the operating system choose a free port.

    Returns
    -------
    socket.socket
        The listening socket.

    Raises
    ------
    FatalError
        No address could be resolved or bound, or listening failed.
    """
    try:
        candidates = socket.getaddrinfo(None, port, socket.AF_INET, socket.SOCK_STREAM, 0, socket.AI_PASSIVE)
    except socket.gaierror as e:
        raise FatalError(f"createListener: getaddrinfo ({G.hostname}:{port}) failed: {e.strerror}", status_code=4) from e

    logger.binding(G.hostname, port, len(candidates))

    sock = None
    for family, socktype, proto, _, address in candidates:
        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as e:
            print_os_error("createListener: socket (...)", e)
            continue

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        except OSError as e:
            sock.close()
            raise FatalError(f"createListener: setsockopt (...): {e.strerror}", status_code=4) from e

        try:
            sock.bind(address)
        except OSError as e:
            sock.close()
            sock = None
            print_os_error("createListener: bind (...)", e)
            continue

        break

    if sock is None:
        raise FatalError("createListener: fail", status_code=4)

    try:
        sock.listen(BACKLOG)
    except OSError as e:
        sock.close()
        raise FatalError(f"createListener: listen: {e.strerror}", status_code=4) from e

    return sock

def set_non_blocking(sock: socket.socket) -> None:
    """Marks the given socket as non-blocking, so accept() never stalls the loop."""
    sock.setblocking(False)
