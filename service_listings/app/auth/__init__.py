"""
Authentication utilities for the Listings Service.
"""

from .identity import JWTIdentityProvider

__all__ = ["JWTIdentityProvider"]
