"""
AdLens command line interface.
"""
