"""
Utility functions
"""
from .datetime_utils import utc_now, ensure_utc, add_hours, isoformat_z

__all__ = ['utc_now', 'ensure_utc', 'add_hours', 'isoformat_z']
