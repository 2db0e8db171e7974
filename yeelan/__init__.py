"""yeelan - Yeelight LAN control client."""

__version__ = "0.1.0"
