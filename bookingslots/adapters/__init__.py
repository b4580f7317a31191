"""
Adapters layer - Schedule data sources (hosted REST database, JSON fixture).
"""

from .mock_repository import MockScheduleRepository
from .supabase_repository import SupabaseRepository

__all__ = ["MockScheduleRepository", "SupabaseRepository"]
