"""
AdLens API - FastAPI application serving display-ready ad creatives.

Provides REST endpoints for single, batch and enrich creative fetches.
"""
