"""
Helper functions shared by the config loader, the resolver and the executors.
"""

import os
import re
from datetime import timedelta
from typing import Tuple, Union

DEFAULT_SSH_PORT = 22

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: Union[str, int, float, timedelta]) -> timedelta:
    """
    Parse a duration such as ``"5s"``, ``"2m"``, ``"1h30m"`` or ``"250ms"``.

    Strings follow the Go duration syntax used by Alertmanager annotations:
    a sequence of decimal numbers, each with a unit suffix, optionally signed.
    ``"0"`` is accepted on its own. Plain numbers are taken as seconds.

    Raises:
        ValueError: if the value is not a valid duration
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")
    if isinstance(value, (int, float)):
        return _seconds(value, value)
    if not isinstance(value, str):
        raise ValueError(f"invalid duration {value!r}")

    text = value.strip()
    if not text:
        raise ValueError("invalid duration ''")

    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)

    seconds = 0.0
    position = 0
    while position < len(text):
        match = _DURATION_PART.match(text, position)
        if match is None:
            raise ValueError(f"invalid duration {value!r}")
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position == 0:
        raise ValueError(f"invalid duration {value!r}")

    return _seconds(sign * seconds, value)


def _seconds(seconds: float, value) -> timedelta:
    try:
        return timedelta(seconds=seconds)
    except OverflowError as e:
        raise ValueError(f"duration out of range {value!r}") from e


def format_duration(value: timedelta) -> str:
    """Render a timedelta the way it is written in config files, e.g. ``"10s"``."""
    seconds = value.total_seconds()
    if seconds == int(seconds):
        return f"{int(seconds)}s"
    return f"{seconds}s"


def split_host_port(address: str, default_port: int = DEFAULT_SSH_PORT) -> Tuple[str, int]:
    """
    Split ``host``, ``host:port``, ``[v6addr]`` or ``[v6addr]:port``.

    Raises:
        ValueError: if the port is not a number or the brackets are unbalanced
    """
    address = address.strip()
    if address.startswith("["):
        end = address.find("]")
        if end == -1:
            raise ValueError(f"missing ']' in address {address!r}")
        host = address[1:end]
        rest = address[end + 1:]
        if not rest:
            return host, default_port
        if not rest.startswith(":"):
            raise ValueError(f"unexpected text after address {address!r}")
        port = rest[1:]
    elif address.count(":") == 1:
        host, port = address.split(":")
    else:
        # Bare hostname or an unbracketed IPv6 address
        return address, default_port

    if not port.isdigit():
        raise ValueError(f"invalid port in address {address!r}")
    return host, int(port)


def file_exists(path: str) -> bool:
    """Return True if ``path`` is an existing regular file we can read."""
    return os.path.isfile(path) and os.access(path, os.R_OK)
