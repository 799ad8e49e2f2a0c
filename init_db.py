#!/usr/bin/env python3
"""
Initialize database tables and the capacity configuration row
"""
import sys
import os

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.core.config import settings
from app.core.database import Base, SessionLocal, engine
from app.services.capacity_gate import CapacityGate

# Import all models to ensure they're registered with Base
from app import models  # noqa: F401


def init_database():
    """Create tables, seed capacity_config and resync the admitted counter"""
    print(f"Creating database tables on {settings.DATABASE_URL.split('@')[-1]} ...")
    Base.metadata.create_all(bind=engine)
    print("Tables created successfully!")

    session = SessionLocal()
    try:
        gate = CapacityGate(session)
        config = gate.ensure_config()
        admitted = gate.sync_admitted_count()
        print(f"Capacity: cap={config.cap} admitted={admitted} public_admission={config.public_admission_enabled}")
    finally:
        session.close()


if __name__ == "__main__":
    init_database()
    print("Database initialization complete!")
