"""
Process configuration, read from environment variables.

Variables follow a PDNS_<SECTION>_<KEY> layout, e.g. PDNS_PVE_URL. Values
that cannot be used fall back to their default and are reported by
invalid_env(), so startup can refuse them with a readable message.
"""

import logging
import os
from typing import List

# Names of variables whose values could not be used
INVALID: List[str] = []


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_number(name: str, default: str, kind=int, maximum=None):
    """Read a number in 0..maximum, recording the variable in INVALID if it is not one."""
    value = os.getenv(name, default)
    try:
        number = kind(value)
    except ValueError:
        number = None
    if number is None or number < 0 or (maximum is not None and number > maximum):
        INVALID.append(name)
        return kind(default)
    return number


def _env_log_level(name: str, default: str) -> str:
    level = os.getenv(name, default).upper()
    if not isinstance(logging.getLevelName(level), int):
        INVALID.append(name)
        return default
    return level


# Logging
DEBUG = _env_bool("DEBUG", "false")
LOG_LEVEL = _env_log_level("LOG_LEVEL", "INFO")

# Zone
DNS_DOMAIN = os.getenv("PDNS_DOMAIN", "")
DNS_PORT = _env_number("PDNS_PORT", "5354", maximum=65535)
DNS_LISTEN = os.getenv("PDNS_LISTEN", "0.0.0.0")
A_TTL = _env_number("PDNS_TTL", "60")  # TTL of the per-host and catch-all A records
SOA_TTL = _env_number("PDNS_SOA_TTL", "300")
CATCHALL = os.getenv("PDNS_CATCHALL", "_all")  # Label aggregating every resolved address
TCP_TIMEOUT = _env_number("PDNS_TCP_TIMEOUT", "5", float)  # Idle limit for TCP clients

# Sync loop
SYNC_INTERVAL = _env_number("PDNS_SYNC_INTERVAL", "30", float)  # Seconds between cycles
REQUEST_TIMEOUT = _env_number("PDNS_REQUEST_TIMEOUT", "10", float)  # Per HTTP request

# Proxmox VE
PVE_URL = os.getenv("PDNS_PVE_URL", "")
PVE_USERNAME = os.getenv("PDNS_PVE_USERNAME", "")  # Token owner and name, e.g. root@pam!dns
PVE_TOKENID = os.getenv("PDNS_PVE_TOKENID", "")  # Token secret
PVE_NODE = os.getenv("PDNS_PVE_NODE", "")
PVE_VERIFY_SSL = _env_bool("PDNS_PVE_VERIFY_SSL", "false")  # PVE ships a self-signed certificate

# RouterOS
ROS_URL = os.getenv("PDNS_ROS_URL", "")
ROS_USERNAME = os.getenv("PDNS_ROS_USERNAME", "")
ROS_PASSWORD = os.getenv("PDNS_ROS_PASSWORD", "")
ROS_VERIFY_SSL = _env_bool("PDNS_ROS_VERIFY_SSL", "true")


def missing_env() -> List[str]:
    """Return the names of mandatory variables that are unset or empty."""
    required = {
        "PDNS_DOMAIN": DNS_DOMAIN,
        "PDNS_PVE_URL": PVE_URL,
        "PDNS_PVE_USERNAME": PVE_USERNAME,
        "PDNS_PVE_TOKENID": PVE_TOKENID,
        "PDNS_PVE_NODE": PVE_NODE,
        "PDNS_ROS_URL": ROS_URL,
        "PDNS_ROS_USERNAME": ROS_USERNAME,
        "PDNS_ROS_PASSWORD": ROS_PASSWORD,
    }
    return [name for name, value in required.items() if not value]


def invalid_env() -> List[str]:
    """Return the names of variables whose values could not be used."""
    return list(INVALID)


def setup_logging():
    logging.basicConfig(
        level=logging.DEBUG if DEBUG else LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
