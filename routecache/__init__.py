"""
routecache - client-side data cache and navigation load coordination.
"""
__version__ = "0.1.0"
