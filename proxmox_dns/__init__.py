"""
Authoritative DNS for Proxmox guests, addressed by RouterOS DHCP leases.
"""

__version__ = "0.1.0"
