"""Storefront checkout service."""
