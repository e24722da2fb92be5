"""WorkSafe: permit-to-work approval workflow service."""

__version__ = "0.1.0"
