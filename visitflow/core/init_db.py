"""
Database initialization script.
Creates all tables and optionally seeds initial data.
"""

from datetime import time
from sqlalchemy import inspect
from visitflow.core.database import engine, Base, SessionLocal
from visitflow.core.auth import AuthUtils
from visitflow.models.time_slot import TimeSlot
from visitflow.models.user import User, UserRole
import visitflow.models  # noqa: F401  registers every table on Base.metadata
import logging

logger = logging.getLogger(__name__)

DEFAULT_TIME_SLOTS = [
    ("Morning", time(9, 0), time(12, 0), 1),
    ("Afternoon", time(13, 0), time(17, 0), 2),
]


def init_db():
    """
    Initialize the database by creating all tables.
    """
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully!")


def seed_initial_data():
    """
    Seed the database with a default administrator and weekday time slots.
    """
    db = SessionLocal()

    try:
        existing_users = db.query(User).count()
        if existing_users == 0:
            logger.info("No users found. Creating default administrator...")
            admin = User(
                username="admin",
                email="admin@visitflow.io",
                name="System Administrator",
                role=UserRole.ADMINISTRATOR,
                hashed_password=AuthUtils.hash_password("admin123"),
                is_active=True
            )
            db.add(admin)
            logger.info("Default administrator created: admin / admin123")
            logger.info("IMPORTANT: Please change the default password after first login!")
        else:
            logger.info(f"Database already has {existing_users} user(s). Skipping user seed.")

        if db.query(TimeSlot).count() == 0:
            for name, start, end, order in DEFAULT_TIME_SLOTS:
                db.add(TimeSlot(
                    name=name,
                    start_time=start,
                    end_time=end,
                    max_visitors=50,
                    active_days="1,2,3,4,5",
                    buffer_minutes=15,
                    display_order=order,
                    is_active=True,
                ))
            logger.info(f"Seeded {len(DEFAULT_TIME_SLOTS)} default time slots")

        db.commit()

    except Exception as e:
        logger.error(f"Error seeding initial data: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def check_tables():
    """
    Check which tables exist in the database.
    """
    inspector = inspect(engine)
    tables = inspector.get_table_names()

    logger.info("Existing tables in database:")
    for table in tables:
        logger.info(f"  - {table}")

    return tables


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    logger.info("=" * 50)
    logger.info("Database Initialization Script")
    logger.info("=" * 50)

    check_tables()
    init_db()
    seed_initial_data()
    check_tables()

    logger.info("=" * 50)
    logger.info("Database initialization complete!")
    logger.info("=" * 50)
