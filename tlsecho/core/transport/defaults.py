"""
Centralized transport defaults for tlsecho.

Every transport variant and the echo components read their fixed values from
here so the plaintext and TLS paths cannot drift apart.
"""

from __future__ import annotations

# Echo loop read buffer
ECHO_BUFFER_SIZE = 2048

# Fixed endpoints for the minimal process surface
DEFAULT_SERVE_ADDRESS = "0.0.0.0:2334"
DEFAULT_CONNECT_ADDRESS = "127.0.0.1:2334"

# Client probe payload
DEFAULT_GREETING = b"hello"

# Listening socket
DEFAULT_LISTEN_BACKLOG = 128

# Stream reader limit (asyncio.StreamReader high-water mark)
DEFAULT_READ_BUFFER_SIZE = 64 * 1024

# TLS credential locations used when nothing else is configured
DEFAULT_TRUSTED_ROOT = "ca-cert.pem"
DEFAULT_PKCS12_PATH = "identity.pfx"
DEFAULT_PKCS12_PASSWORD = "1234"

# TLS handshakes still running after this many seconds are dropped
DEFAULT_TLS_HANDSHAKE_TIMEOUT = 10.0

# Pause after a failed accept before the listening socket is polled again
DEFAULT_ACCEPT_RETRY_DELAY = 0.1
