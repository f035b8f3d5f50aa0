"""
Key provider implementations for resolving JWT signing keys.

This package contains implementations of the KeyProvider protocol.
"""

from .jwks import JWKSKeyProvider

__all__ = ["JWKSKeyProvider"]
