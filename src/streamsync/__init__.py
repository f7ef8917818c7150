"""
StreamSync: IPTV catalog synchronization.

Pulls live channels, movies, series, anime and program guides from upstream
providers into a relational store, and runs the background jobs that keep
them fresh.
"""

__version__ = "0.1.0"
