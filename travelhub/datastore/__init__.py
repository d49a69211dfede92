from travelhub.datastore.engine import Database
from travelhub.datastore.models import Base, CachedActivityDB, CachedLocationDB
from travelhub.datastore.repositories import CacheRepository, SqlCacheStore

__all__ = [
    "Base",
    "CacheRepository",
    "CachedActivityDB",
    "CachedLocationDB",
    "Database",
    "SqlCacheStore",
]
