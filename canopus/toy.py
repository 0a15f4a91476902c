"""Tiny TCP service used as a supervised target in end-to-end runs.

It prints ``ready`` once listening and answers every connection with
``ready\\n`` before closing it.
"""

from __future__ import annotations

import os
import re
import socket
import sys
import threading
from typing import Mapping, Optional, Sequence

__all__ = ["DEFAULT_PORT", "resolve_port", "handle_client", "main"]

DEFAULT_PORT = 8081

_PORT_RE = re.compile(r"\+?[0-9]+")


def _parse_port(text: Optional[str]) -> Optional[int]:
    if text is None or not _PORT_RE.fullmatch(text):
        return None
    value = int(text)
    return value if value <= 65535 else None


def resolve_port(argv: Sequence[str], environ: Mapping[str, str]) -> int:
    """Port from ``PORT``, else from the first argument, else the default."""
    port = _parse_port(environ.get("PORT"))
    if port is None and argv:
        port = _parse_port(argv[0])
    return DEFAULT_PORT if port is None else port


def handle_client(conn: socket.socket) -> None:
    """Send ``ready`` to the client and close the connection."""
    with conn:
        try:
            conn.sendall(b"ready\n")
        except OSError:
            pass


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Listen on all interfaces and serve clients until accepting fails."""
    args = list(sys.argv[1:] if argv is None else argv)
    port = resolve_port(args, os.environ)
    try:
        listener = socket.create_server(("0.0.0.0", port))
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print("ready", flush=True)
    with listener:
        while True:
            try:
                conn, _ = listener.accept()
            except OSError:
                break
            threading.Thread(target=handle_client, args=(conn,), daemon=True).start()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())