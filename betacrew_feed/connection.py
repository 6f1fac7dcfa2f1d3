"""
BetaCrew TCP Connection Module
==============================

Handles the TCP socket to the BetaCrew exchange server.

Key Features:
- One socket per request (stream-all or single resend)
- Configurable timeout on connect and on every read
- Error handling and logging for socket operations
- Context manager support for guaranteed cleanup

Protocol Details:
- Transport: TCP (reliable, ordered byte stream)
- Request: 2-byte frame sent immediately after connect
- Byte Order: Big-endian (network byte order)
- End of data: server closes the connection (recv returns b'')

Default server: localhost:3000
"""

import socket
import logging
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_HOST = 'localhost'
DEFAULT_PORT = 3000
DEFAULT_TIMEOUT = 30.0
DEFAULT_BUFFER_SIZE = 4096


class ExchangeConnection:
    """
    Manages a single TCP connection to the exchange server.

    This class handles:
    - Socket creation and timeout configuration
    - Sending request frames
    - Receiving raw stream chunks
    - Closing the socket exactly once
    """

    def __init__(self, host: str, port: int, timeout: Optional[float] = DEFAULT_TIMEOUT,
                 buffer_size: int = DEFAULT_BUFFER_SIZE):
        """
        Initialize connection parameters.

        Args:
            host: Exchange server hostname (e.g., "localhost")
            port: TCP port (e.g., 3000)
            timeout: Seconds to wait on connect/recv, None to wait forever
            buffer_size: Maximum bytes read per recv() call

        Note:
            A timeout of None reproduces a client that can stall forever on a
            server that neither sends nor closes.
        """
        self.host = host
        self.port = port
        self.timeout = timeout
        self.buffer_size = buffer_size
        self.socket: Optional[socket.socket] = None

        logger.debug(f"Initialized exchange connection parameters: {host}:{port}")

    def connect(self) -> socket.socket:
        """
        Open the TCP connection.

        Returns:
            socket.socket: Connected socket

        Raises:
            OSError: If the connection is refused, unreachable or times out
        """
        try:
            self.socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self.socket.settimeout(self.timeout)
            self.socket.connect((self.host, self.port))
            logger.debug(f"✓ Connected to {self.host}:{self.port}")
            return self.socket

        except socket.error as e:
            logger.error(f"✗ Socket error connecting to {self.host}:{self.port}: {e}")
            self.disconnect()
            raise

    def send(self, frame: bytes):
        """Write a complete request frame."""
        if self.socket is None:
            raise OSError("Connection is not open")
        self.socket.sendall(frame)
        logger.debug(f"Sent request frame: {frame.hex()}")

    def receive(self) -> bytes:
        """
        Read the next chunk from the stream.

        Returns:
            Up to buffer_size bytes, or b'' once the server has closed

        Raises:
            socket.timeout: If no data arrives within the timeout
            OSError: On connection reset or other socket failures
        """
        if self.socket is None:
            raise OSError("Connection is not open")
        return self.socket.recv(self.buffer_size)

    def disconnect(self):
        """
        Close the socket.

        Safe to call more than once.
        """
        if self.socket:
            try:
                self.socket.close()
                logger.debug(f"Disconnected from {self.host}:{self.port}")
            except OSError as e:
                logger.error(f"Error during disconnect: {e}")
            finally:
                self.socket = None

    @property
    def is_connected(self) -> bool:
        return self.socket is not None

    def __enter__(self):
        """Context manager entry - establish connection."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - cleanup connection."""
        self.disconnect()


def create_connection(config: dict) -> ExchangeConnection:
    """
    Factory function to create an exchange connection from configuration.

    Args:
        config: Configuration dictionary with 'server' section

    Returns:
        ExchangeConnection: Configured (not yet connected) connection object

    Example:
        >>> config = {'server': {'host': 'localhost', 'port': 3000}, 'timeout': 10}
        >>> conn = create_connection(config)
        >>> sock = conn.connect()
    """
    server_config = config.get('server', {})

    return ExchangeConnection(
        host=server_config.get('host', DEFAULT_HOST),
        port=server_config.get('port', DEFAULT_PORT),
        # 0 would make the socket non-blocking; it means no timeout
        timeout=config.get('timeout', DEFAULT_TIMEOUT) or None,
        buffer_size=config.get('buffer_size', DEFAULT_BUFFER_SIZE)
    )
