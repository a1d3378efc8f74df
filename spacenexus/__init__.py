"""
SpaceNexus Platform Backend
===========================
Ad serving, tier gating, scoring, caching and offline sync for the
SpaceNexus space-industry intelligence platform.
"""

__version__ = "1.0.0"
