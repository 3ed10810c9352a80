"""
Synchronization pipelines between the fence table and region files.

- Exporter: fence table -> <data_dir>/<adcode>.json (bounded thread pool)
- Loader: region files -> fence table (single atomic upsert)
"""

from .export import Exporter
from .load import Loader

__all__ = ["Exporter", "Loader"]
