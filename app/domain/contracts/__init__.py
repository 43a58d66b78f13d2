"""Contracts domain - Booking and quote contracts, signatures and their lifecycle"""

from .router import router

__all__ = ["router"]
