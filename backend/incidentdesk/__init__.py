"""Multi-tenant NDIS incident capture and analysis backend."""

__version__ = "0.4.0"
