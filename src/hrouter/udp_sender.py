"""UDP sender for outbound device commands.

One connected datagram socket per device endpoint, reused for every
command.  Sending is fire-and-forget: devices never acknowledge.

Example:
    >>> from hrouter.udp_sender import UdpSender
    >>> sender = UdpSender("192.168.1.157", 8888)
    >>> sender.send(b"...")  # One OSC datagram
    >>> sender.close()
"""

import socket
import threading

from hrouter.config import CONNECT_TIMEOUT_S, SEND_TIMEOUT_S


class UdpSender:
    """Connected UDP socket to one ``(host, port)`` endpoint.

    The socket is opened lazily on the first send and reopened after a
    transport error.  Connect and send are each bounded by a timeout;
    ``socket.timeout`` (a ``TimeoutError``) and other ``OSError``
    subclasses propagate to the caller.

    Args:
        host: Device IP address.
        port: Device UDP port.
        connect_timeout: Seconds allowed for socket setup and connect.
        send_timeout: Seconds allowed for one send.
    """

    def __init__(self, host: str, port: int,
                 connect_timeout: float = CONNECT_TIMEOUT_S,
                 send_timeout: float = SEND_TIMEOUT_S):
        self._host = host
        self._port = port
        self._connect_timeout = connect_timeout
        self._send_timeout = send_timeout
        self._sock: socket.socket | None = None
        self._lock = threading.Lock()

    @property
    def endpoint(self) -> tuple[str, int]:
        return (self._host, self._port)

    def _connect(self) -> socket.socket:
        """Open and connect the socket if not already done."""
        with self._lock:
            if self._sock is None:
                family = socket.AF_INET6 if ":" in self._host else socket.AF_INET
                sock = socket.socket(family, socket.SOCK_DGRAM)
                try:
                    sock.settimeout(self._connect_timeout)
                    sock.connect((self._host, self._port))
                except OSError:
                    sock.close()
                    raise
                self._sock = sock
            return self._sock

    def send(self, data: bytes) -> None:
        """Send one datagram to the endpoint.

        Raises:
            TimeoutError: Connect or send exceeded its bound.
            OSError: Any other socket failure.  The socket is dropped
                and reopened on the next call.
        """
        sock = self._connect()
        try:
            sock.settimeout(self._send_timeout)
            sock.send(data)
        except OSError:
            self.close()
            raise

    def close(self) -> None:
        """Close the socket."""
        with self._lock:
            if self._sock is not None:
                try:
                    self._sock.close()
                except OSError:
                    pass
                self._sock = None
