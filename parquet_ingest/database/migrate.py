"""
Database migration runner for the ingestion pipeline.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

from parquet_ingest.config import DatabaseSettings
from parquet_ingest.database.connection import DatabaseManager
from parquet_ingest.errors import ConfigError

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


class MigrationManager:
    """Applies the SQL files in the migrations directory."""

    def __init__(self, db: DatabaseManager, migrations_dir: Path = MIGRATIONS_DIR):
        self.db = db
        self.migrations_dir = migrations_dir

    def list_migrations(self) -> List[str]:
        if not self.migrations_dir.exists():
            logger.warning(f"Migrations directory not found: {self.migrations_dir}")
            return []
        return sorted(path.name for path in self.migrations_dir.glob("*.sql"))

    def run_migration(self, migration_file: str) -> None:
        """Run a single migration file in one transaction."""
        migration_path = self.migrations_dir / migration_file

        if not migration_path.exists():
            raise FileNotFoundError(f"Migration file not found: {migration_path}")

        logger.info(f"Running migration: {migration_file}")
        migration_sql = migration_path.read_text(encoding='utf-8')
        statements = [stmt.strip() for stmt in migration_sql.split(';') if stmt.strip()]

        with self.db.transaction() as connection:
            with connection.cursor() as cursor:
                for statement in statements:
                    cursor.execute(statement)

        logger.info(f"Migration completed successfully: {migration_file}")

    def run_all_migrations(self) -> int:
        """Run all migration files in order. Returns how many ran."""
        migration_files = self.list_migrations()

        if not migration_files:
            logger.info("No migration files found")
            return 0

        logger.info(f"Found {len(migration_files)} migration files")

        for migration_file in migration_files:
            self.run_migration(migration_file)

        logger.info("All migrations completed successfully")
        return len(migration_files)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for running migrations."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        settings = DatabaseSettings.from_env()
        MigrationManager(DatabaseManager(settings)).run_all_migrations()
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except Exception as e:
        logger.error(f"Migration failed: {e}")
        return 1

    print("Database migrations completed successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main())
