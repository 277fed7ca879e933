"""
Check the PostgreSQL database for the RSS Feeder auth service.
Run once before starting the app: python scripts/init_postgres.py

Requires: PostgreSQL installed and running. Create user and database:

  sudo -u postgres psql
  CREATE USER rssfeeder WITH PASSWORD 'rssfeeder';
  CREATE DATABASE rssfeeder_auth OWNER rssfeeder;
  GRANT ALL PRIVILEGES ON DATABASE rssfeeder_auth TO rssfeeder;
  \q
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import create_engine, inspect, text
from feedauth.config import settings

REQUIRED_TABLES = ("accounts", "sessions", "token_revocations")


def main():
    url = settings.get_database_url()
    if not url.startswith("postgresql"):
        print("DATABASE_URL is not PostgreSQL. Skipping.")
        return
    try:
        engine = create_engine(url)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("PostgreSQL connection OK. Database exists.")
    except Exception as e:
        print(f"Cannot connect to PostgreSQL: {e}")
        print("\nCreate database first:")
        print("  psql -U postgres -c \"CREATE USER rssfeeder WITH PASSWORD 'rssfeeder';\"")
        print("  psql -U postgres -c \"CREATE DATABASE rssfeeder_auth OWNER rssfeeder;\"")
        print("  psql -U postgres -c \"GRANT ALL PRIVILEGES ON DATABASE rssfeeder_auth TO rssfeeder;\"")
        sys.exit(1)

    missing = [name for name in REQUIRED_TABLES if not inspect(engine).has_table(name)]
    if missing:
        print(f"Missing tables: {', '.join(missing)}. Run: alembic upgrade head")
        sys.exit(2)
    print("Auth tables present.")


if __name__ == "__main__":
    main()
