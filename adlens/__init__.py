"""
AdLens - Meta ad creative mirroring for marketing-analytics dashboards.

Resolves the best available image/video asset and copy for Meta ads,
keeps a durable quality-graded copy in Supabase Storage, and serves it
back without re-fetching on every page load.
"""

__version__ = "1.0.0"
__author__ = "AdLens Team"
