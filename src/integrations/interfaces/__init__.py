"""Protocol interfaces for dependency inversion."""

from .providers import IProviderAdapter, IProviderClient

__all__ = ["IProviderAdapter", "IProviderClient"]
