"""
Registry Image Check.

Version discovery for container images: resolves the current digest of a
tracked tag and reports which versions a CI pipeline has not seen yet.
"""
from .check import check, reconcile
from .models import CheckRequest, Source, Version

__all__ = ["check", "reconcile", "CheckRequest", "Source", "Version"]
