"""Copy a MySQL or PostgreSQL database to another, replacing chosen columns with fake data."""

__version__ = "0.1.0"
__all__ = ["__version__"]