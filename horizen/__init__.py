"""Horizen Vault - secrets protection and backup core for the Horizen start page."""

__version__ = "1.5.0"

from .models import Prefs

__all__ = [
    "__version__",
    "Prefs",
]
