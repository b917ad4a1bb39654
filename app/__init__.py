"""Dashboard cache worker"""

__version__ = "1.0.0"
