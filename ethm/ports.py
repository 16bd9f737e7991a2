"""Free local port discovery for the node's P2P and JSON-RPC listeners."""

import logging
import random
import socket

logger = logging.getLogger(__name__)

# Upper bound on random draws before giving up.
_MAX_ATTEMPTS = 200


def port_is_available(port: int, host: str = "127.0.0.1") -> bool:
    """Return ``True`` if *port* can be bound on *host* right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def get_available_ports(
    count: int = 2,
    low: int = 8000,
    high: int = 9000,
    rng: random.Random | None = None,
) -> list[int]:
    """Pick up to *count* distinct free ports at random in ``[low, high]``.

    Ports are drawn uniformly and kept when ``port_is_available`` says so.
    Fewer than *count* ports are returned if the range is exhausted or
    too many draws fail; callers decide whether that is fatal.

    Args:
        count: Number of ports wanted.
        low: Lowest candidate port (inclusive).
        high: Highest candidate port (inclusive).
        rng: Random source, mainly for tests.

    Returns:
        A list of distinct port numbers, at most *count* long.
    """
    rng = rng or random.Random()
    found: list[int] = []
    tried: set[int] = set()
    span = high - low + 1

    for _ in range(_MAX_ATTEMPTS):
        if len(found) >= count or len(tried) >= span:
            break
        port = rng.randint(low, high)
        if port in tried:
            continue
        tried.add(port)
        if port_is_available(port):
            found.append(port)

    logger.debug("Selected ports %s after %d probe(s)", found, len(tried))
    return found
