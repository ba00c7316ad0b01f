"""Database layer package.

Public re-exports so callers can write::

    from orbit_crawler.db import get_connection, init_db
    from orbit_crawler.db import domain_risk
"""

from orbit_crawler.db.connection import get_connection
from orbit_crawler.db.migrations import init_db
from orbit_crawler.db import domain_risk, fetch_cache

__all__ = ["get_connection", "init_db", "domain_risk", "fetch_cache"]
