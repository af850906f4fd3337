"""
Core configuration, database access and observability for AdLens.
"""
