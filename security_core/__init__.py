"""security_core: authorization & security-audit core."""

__version__ = "0.1.0"
