"""
Data Ingestion Module
"""
from .seed_db import seed

__all__ = ["seed"]
