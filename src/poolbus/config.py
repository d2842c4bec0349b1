"""Project-wide configuration constants and config-file loading.

Central place for tuneable parameters shared across modules.
Import individual names where needed.

Example:
    >>> from poolbus.config import load_config, BAUD_RATE
    >>> cfg = load_config("poolbus.toml")
    >>> cfg["port"]
    '/dev/ttyUSB0'
"""

import tomllib

# The bus runs at 9600 baud, 8-N-1.
BAUD_RATE = 9600

# Received LEN values at or above this are implausible on this bus.
RECEIVE_PAYLOAD_LIMIT = 30

# Largest payload the encoder will put on the wire.
MAX_PAYLOAD_LEN = 254

# Upper bound on bytes requested from the transport per read.
READ_CHUNK = 64

# How often blocking loops wake up to check for shutdown, in seconds.
POLL_INTERVAL_S = 0.5


def load_config(path: str) -> dict:
    """Read a TOML config file and validate its keys.

    Keys: ``port`` (str, required), ``baudrate`` (int, optional,
    defaults to ``BAUD_RATE``).

    Raises:
        ValueError: If a key is missing or has the wrong type.

    Example:
        >>> cfg = load_config("poolbus.toml")
        >>> cfg["baudrate"]
        9600
    """
    with open(path, "rb") as f:
        raw = tomllib.load(f)

    _require_str(raw, "port")
    if "baudrate" in raw:
        _require_int(raw, "baudrate")
        if raw["baudrate"] <= 0:
            raise ValueError("baudrate must be positive, got %d" % raw["baudrate"])

    return {
        "port": raw["port"],
        "baudrate": raw.get("baudrate", BAUD_RATE),
    }


def _require_str(raw: dict[str, object], key: str) -> None:
    """Validate that *key* exists in *raw* and is a str."""
    if key not in raw:
        raise ValueError("missing required key: %s" % key)
    if not isinstance(raw[key], str):
        raise ValueError("%s must be str, got %s" % (key, type(raw[key]).__name__))


def _require_int(raw: dict[str, object], key: str) -> None:
    """Validate that *key* exists in *raw* and is an int."""
    if key not in raw:
        raise ValueError("missing required key: %s" % key)
    if isinstance(raw[key], bool) or not isinstance(raw[key], int):
        raise ValueError("%s must be int, got %s" % (key, type(raw[key]).__name__))
