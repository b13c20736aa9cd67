"""Exception types shared across the package."""


class ProxmoxDNSError(Exception):
    """Base class for application-specific exceptions."""


class ParseError(ProxmoxDNSError):
    """Text could not be parsed into the expected value."""


class MacParseError(ParseError):
    """No MAC address could be found in an interface config string."""


class MissingConfigError(ProxmoxDNSError):
    """A guest's configuration could not be fetched."""


class InvalidHostnameError(ProxmoxDNSError):
    """A guest name is not usable as a DNS owner name."""


class ProxmoxError(ProxmoxDNSError):
    """The Proxmox API returned an error or an unexpected payload."""


class RouterOSError(ProxmoxDNSError):
    """The RouterOS API returned an error or an unexpected payload."""
