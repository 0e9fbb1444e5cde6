"""Utility functions for the inventory kernel."""

from inventory_kernel.utils.hashing import canonicalize_json, hash_payload

__all__ = ["canonicalize_json", "hash_payload"]
