"""
MAC address extraction from Proxmox interface config strings.

Interface specs differ between guest kinds and PVE versions:

    virtio=BC:24:11:2A:9F:03,bridge=vmbr0,firewall=1          (qemu)
    name=eth0,bridge=vmbr0,hwaddr=BC:24:11:5E:70:C1,ip=dhcp  (lxc)

so no key name or position is assumed. The leftmost run of six colon
separated hex octets wins.
"""

import re
from dataclasses import dataclass

from proxmox_dns.errors import MacParseError, ParseError

_OCTET = r"[0-9A-Fa-f]{2}"
MAC_PATTERN = re.compile(_OCTET + r"(?::" + _OCTET + r"){5}")


@dataclass(frozen=True)
class MacAddress:
    """A 48-bit hardware address."""

    octets: bytes

    def __post_init__(self):
        if len(self.octets) != 6:
            raise ValueError(f"MAC address needs 6 octets, got {len(self.octets)}")

    @classmethod
    def parse(cls, text: str) -> "MacAddress":
        """Parse a string that is exactly one colon-separated MAC address."""
        if not isinstance(text, str) or not MAC_PATTERN.fullmatch(text.strip()):
            raise ParseError(f"Not a MAC address: {text!r}")
        return cls._from_match(text.strip())

    @classmethod
    def _from_match(cls, text: str) -> "MacAddress":
        return cls(bytes(int(octet, 16) for octet in text.split(":")))

    def __str__(self) -> str:
        return ":".join(f"{b:02X}" for b in self.octets)


def extract_mac(config: str) -> MacAddress:
    """Return the first MAC address found anywhere in config.

    Raises MacParseError if the string contains none.
    """
    match = MAC_PATTERN.search(config)
    if match is None:
        raise MacParseError(f"No MAC address in {config!r}")
    return MacAddress._from_match(match.group(0))
