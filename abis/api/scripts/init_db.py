"""
Database initialization script for deployment.
Creates all tables from models, stamps the migration head, and seeds default settings.
"""
import sys
import os
import time

# Ensure project root is importable
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '../../..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)


LATEST_REVISION = '20261001_initial'

DEFAULT_SETTINGS = {
    'barangayName': None,  # filled from config at seed time
    'paymentInstructions': 'Pay at the barangay hall cashier or via GCash using the QR code.',
}


def wait_for_db(app, max_retries=5, retry_delay=10):
    """
    Wait for database to be available with retries.
    Hosted PostgreSQL connections can be slow to establish.
    """
    from abis.api import db
    from sqlalchemy import text

    for attempt in range(max_retries):
        try:
            with app.app_context():
                db.session.execute(text("SELECT 1"))
                db.session.commit()
                print("  Database connection successful!")
                return True
        except Exception as e:
            if attempt < max_retries - 1:
                print(f"  Database connection attempt {attempt + 1}/{max_retries} failed: {e}")
                print(f"  Retrying in {retry_delay} seconds...")
                time.sleep(retry_delay)
            else:
                print(f"  Database connection failed after {max_retries} attempts: {e}")
                raise
    return False


def seed_settings_if_empty(app):
    """Insert default settings that do not exist yet. Existing values are kept."""
    from abis.api import db
    from abis.api.models.setting import Setting

    created = 0
    for key, value in DEFAULT_SETTINGS.items():
        if Setting.query.filter_by(key=key).first():
            continue
        if key == 'barangayName':
            value = app.config.get('BARANGAY_NAME')
        Setting.upsert(key, value)
        created += 1
    db.session.commit()
    print(f"  Seeded {created} default setting(s).")
    return created


def stamp_migration_head():
    """Record the latest revision so Flask-Migrate starts from the created schema."""
    from abis.api import db
    from sqlalchemy import text

    with db.engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE IF NOT EXISTS alembic_version (version_num VARCHAR(32) NOT NULL, PRIMARY KEY (version_num))"
        ))
        conn.execute(text("DELETE FROM alembic_version"))
        conn.execute(text("INSERT INTO alembic_version (version_num) VALUES (:rev)"), {'rev': LATEST_REVISION})
    print(f"  Alembic version set to {LATEST_REVISION}.")


def init_database(app=None):
    """Initialize database - create tables if they don't exist and seed settings"""
    from abis.api.app import create_app
    from abis.api import db

    app = app or create_app()

    print("Connecting to database...")
    wait_for_db(app, max_retries=5, retry_delay=15)

    with app.app_context():
        # Register every model with SQLAlchemy
        from abis.api.models import Document, Blotter, Certificate, Setting  # noqa: F401

        print("Creating missing tables...")
        db.create_all()

        try:
            stamp_migration_head()
        except Exception as stamp_err:
            print(f"  Note: Alembic version stamp skipped - {stamp_err}")

        print("Checking default settings...")
        seed_settings_if_empty(app)

    print("Database initialization complete!")


if __name__ == '__main__':
    init_database()
