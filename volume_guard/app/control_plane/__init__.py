"""Hosting panel API integration."""

from .client import DEFAULT_TIMEOUT_SECONDS, ControlPlaneClient

__all__ = ["ControlPlaneClient", "DEFAULT_TIMEOUT_SECONDS"]
