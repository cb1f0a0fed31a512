from __future__ import annotations

from .config import BundleConfig
from .export import Exporter, ExportResult

__version__ = "0.1.0"

__all__ = ["BundleConfig", "Exporter", "ExportResult", "__version__"]
