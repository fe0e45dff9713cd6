"""
Network Reachability

Provider initialization requires the network (assisted fixes and reverse
geocoding need it), so the engine checks reachability first.
"""

import socket
from loguru import logger

from ..core.config import settings


class NetworkProbe:
    """Checks reachability by opening a TCP connection to a known host"""

    def __init__(self, host: str = None, port: int = None, timeout: float = None):
        self.host = host or settings.provider.probe_host
        self.port = port or settings.provider.probe_port
        self.timeout = timeout if timeout is not None else settings.provider.probe_timeout

    def is_reachable(self) -> bool:
        """
        Check whether the probe host accepts connections.

        Returns:
            True if a connection could be opened
        """
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout):
                return True
        except OSError as e:
            logger.debug(f"Network probe to {self.host}:{self.port} failed: {e}")
            return False


class StaticNetworkProbe(NetworkProbe):
    """Probe with a fixed answer (offline development, tests)"""

    def __init__(self, reachable: bool = True):
        super().__init__()
        self.reachable = reachable

    def is_reachable(self) -> bool:
        return self.reachable
