"""Casino Account Service: registro, login y saldo de usuarios."""

__version__ = "1.0.0"
