# Overview: Flask extension instances for database, migrations and the tenant cache.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .cache import InMemoryTTLCache

db = SQLAlchemy()
migrate = Migrate()

# Location ownership lookups (location_id -> org_id); swap for a distributed
# backend by assigning another CacheBackend before init_app.
tenant_cache = InMemoryTTLCache()
