"""Accounting provider adapters."""

from .base import BaseProviderAdapter, ProviderClient
from .quickbooks import QuickBooksAdapter
from .xero import XeroAdapter

__all__ = ["BaseProviderAdapter", "ProviderClient", "QuickBooksAdapter", "XeroAdapter"]
