"""
Check the PostgreSQL database for AuthGate.
Run once before starting the app: python scripts/init_postgres.py

Requires: PostgreSQL installed and running. Create user and database:

  sudo -u postgres psql
  CREATE USER authgate WITH PASSWORD 'authgate';
  CREATE DATABASE authgate_db OWNER authgate;
  GRANT ALL PRIVILEGES ON DATABASE authgate_db TO authgate;
  \\q
"""

import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import text
from authgate.config import get_settings
from authgate.core.database import build_engine


def main():
    settings = get_settings()
    url = settings.get_database_url()
    if not url.startswith("postgresql"):
        print("Database URL is not PostgreSQL. Skipping.")
        return
    try:
        engine = build_engine(settings)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("PostgreSQL connection OK. Database exists.")
    except Exception as e:
        print(f"Cannot connect to PostgreSQL: {e}")
        print("\nCreate database first:")
        print("  psql -U postgres -c \"CREATE USER authgate WITH PASSWORD 'authgate';\"")
        print("  psql -U postgres -c \"CREATE DATABASE authgate_db OWNER authgate;\"")
        print("  psql -U postgres -c \"GRANT ALL PRIVILEGES ON DATABASE authgate_db TO authgate;\"")
        sys.exit(1)


if __name__ == "__main__":
    main()
