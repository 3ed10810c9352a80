"""
adfence: keep a PostGIS fence table in sync with per-region GeoJSON files.
"""

__version__ = "0.1.0"
