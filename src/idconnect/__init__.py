"""idconnect - connector contract toolkit for identity-management hosts."""

__version__ = "1.0.0"
