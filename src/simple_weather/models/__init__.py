from .base import Base
from .cached_location import CachedLocationRecord
from .saved_place import SavedPlaceRecord

__all__ = [
    "Base",
    "CachedLocationRecord",
    "SavedPlaceRecord",
]
