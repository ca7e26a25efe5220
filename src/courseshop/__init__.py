"""Persistence and payment-confirmation core for the course storefront."""
