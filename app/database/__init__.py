"""
Database module - SQLAlchemy models and operations
"""

from .models import *
from .crud import *
from .init_db import init_database, db_manager, DatabaseManager
