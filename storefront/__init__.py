"""Storefront domain models and API client."""
