"""UDP receiver for inbound OSC parameters.

The avatar platform pushes one OSC message per datagram to the
router's receive port.  There is no reply and no connection state.

Example:
    >>> from hrouter.udp_receiver import UdpReceiver
    >>> receiver = UdpReceiver("127.0.0.1", 9001)
    >>> dgram = receiver.recv_timeout(0.5)
    >>> receiver.close()
"""

import socket


class UdpReceiver:
    """Bound UDP socket the dispatcher polls for OSC datagrams.

    Args:
        host: Interface to bind; an address containing ``:`` binds IPv6.
        port: UDP port to listen on, or 0 for an ephemeral port.

    Raises:
        OSError: The address cannot be bound (e.g. port already in use).
    """

    # Larger than any single-parameter OSC message the platform sends.
    _MAX_DATAGRAM = 4096

    def __init__(self, host: str, port: int):
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        self._sock = socket.socket(family, socket.SOCK_DGRAM)
        try:
            self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._sock.bind((host, port))
        except OSError:
            self._sock.close()
            raise

    @property
    def port(self) -> int:
        """The bound port (useful when binding to port 0)."""
        return self._sock.getsockname()[1]

    def recv_timeout(self, timeout_s: float) -> bytes:
        """Wait up to *timeout_s* seconds for one datagram.

        Returns:
            The raw datagram, or empty bytes on timeout or socket error,
            so the caller can re-check its shutdown flag.
        """
        try:
            self._sock.settimeout(timeout_s)
            data, _ = self._sock.recvfrom(self._MAX_DATAGRAM)
        except OSError:
            return b""
        return data

    def close(self) -> None:
        """Close the socket."""
        self._sock.close()
