"""
tlsecho - one echo service, two transports

A byte echo server and its client probe written once against a transport
capability (bind, accept, connect) and run over either plaintext TCP or TLS.

## Quick Start

```python
from tlsecho.core.transport import TcpTransport
from tlsecho.server import EchoServer
from tlsecho.client import send_hello

server = EchoServer(TcpTransport(), "127.0.0.1:2334")
await server.start()
```

From the command line:

    tlsecho tcp serve
    tlsecho tls client
"""

__version__ = "0.1.0"
