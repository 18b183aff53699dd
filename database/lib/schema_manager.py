"""Database schema management module.

Schema versions live in ``database/schema/vN.py``, each exposing a ``schema``
dict with the tables it adds. A fresh database gets the tables of every
version created in order; an existing one gets the ``migrations`` statements
of every newer version.
"""
import importlib
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from ..exceptions import DatabaseSchemaError

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent.parent / 'schema'
SCHEMA_PACKAGE = 'database.schema'


class SchemaManager:
    """Manages database schema versioning and migrations."""

    def __init__(self, pool, schema_dir: Optional[Path] = None) -> None:
        """Initialize schema manager.

        Args:
            pool: Database connection pool
            schema_dir: Directory containing schema version files
        """
        self.pool = pool
        self._schema_dir = Path(schema_dir) if schema_dir else SCHEMA_DIR
        self.current_version = 0

    async def initialize(self) -> None:
        """Create the version table if needed and apply pending versions.

        Raises:
            DatabaseSchemaError: If no schema files exist or applying one fails
        """
        async with self.pool.acquire() as conn:
            await conn.execute('''
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INT8 PRIMARY KEY,
                    applied_at TIMESTAMP NOT NULL DEFAULT now()
                )
            ''')
            self.current_version = await conn.fetchval(
                'SELECT COALESCE(MAX(version), 0) FROM schema_version'
            )

        schema_files = self.load_schema_files()
        if not schema_files:
            raise DatabaseSchemaError(f"No valid schema files found in {self._schema_dir}")

        await self._apply_migrations(schema_files)

    def load_schema_files(self) -> Dict[int, Dict[str, Any]]:
        """Load all schema version files.

        Returns:
            Dict mapping version numbers to schema definitions, oldest first

        Raises:
            DatabaseSchemaError: If a file has no schema or the wrong version
        """
        schema_files = {}
        if not self._schema_dir.exists():
            return schema_files

        for file in self._schema_dir.glob('v*.py'):
            try:
                version = int(file.stem[1:])
            except ValueError:
                logger.warning(f"Invalid schema filename: {file}")
                continue

            module = importlib.import_module(f"{SCHEMA_PACKAGE}.{file.stem}")
            schema = getattr(module, 'schema', None)
            if schema is None:
                raise DatabaseSchemaError(f"Schema file {file} missing 'schema' definition")
            if schema['version'] != version:
                raise DatabaseSchemaError(
                    f"Schema version mismatch in {file}: "
                    f"Expected v{version}, got v{schema['version']}"
                )
            schema_files[version] = schema

        return dict(sorted(schema_files.items()))

    async def _apply_migrations(self, schema_files: Dict[int, Dict[str, Any]]) -> None:
        latest_version = max(schema_files)
        if self.current_version >= latest_version:
            logger.info("Schema is up to date")
            return

        logger.info(f"Updating schema from version {self.current_version} to {latest_version}")

        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    if self.current_version == 0:
                        for schema in schema_files.values():
                            await self._create_fresh_schema(conn, schema)
                    else:
                        for version in range(self.current_version + 1, latest_version + 1):
                            if version not in schema_files:
                                continue
                            for statement in schema_files[version].get('migrations', []):
                                await conn.execute(statement)
                            await conn.execute(
                                'INSERT INTO schema_version (version) VALUES ($1)',
                                version
                            )
                            logger.info(f"Successfully migrated to version {version}")
        except DatabaseSchemaError:
            raise
        except Exception as e:
            logger.error(f"Schema migration failed: {e}")
            raise DatabaseSchemaError(f"Failed to apply schema migrations: {e}") from e

        self.current_version = latest_version

    async def _create_fresh_schema(self, conn, schema: Dict[str, Any]) -> None:
        # Tables first, then constraints, so foreign keys can point anywhere
        for table in schema.get('tables', []):
            await self._create_table(conn, table)
        for table in schema.get('tables', []):
            await self._add_constraints(conn, table)
        for trigger in schema.get('triggers', []):
            await self._create_trigger(conn, trigger)

        await conn.execute(
            'INSERT INTO schema_version (version) VALUES ($1)',
            schema['version']
        )
        logger.info(f"Successfully created fresh schema version {schema['version']}")

    async def _create_table(self, conn, table: Dict[str, Any]) -> None:
        columns = []
        constraints = []

        for col in table['columns']:
            col_def = f"{col['name']} {col['type']}"
            if col.get('primary_key'):
                constraints.append(f"PRIMARY KEY ({col['name']})")
            elif col.get('unique'):
                constraints.append(f"UNIQUE ({col['name']})")
            if 'default' in col:
                col_def += f" DEFAULT {col['default']}"
            if col.get('nullable') is False:
                col_def += " NOT NULL"
            columns.append(col_def)

        if isinstance(table.get('primary_key'), list):
            constraints.append(f"PRIMARY KEY ({', '.join(table['primary_key'])})")

        await conn.execute(f'''
            CREATE TABLE IF NOT EXISTS {table['name']} (
                {', '.join(columns + constraints)}
            )
        ''')
        logger.info(f"Created table {table['name']}")

    async def _add_constraints(self, conn, table: Dict[str, Any]) -> None:
        for fk in table.get('foreign_keys', []):
            await conn.execute(f'''
                ALTER TABLE {table['name']}
                ADD CONSTRAINT fk_{table['name']}_{fk['columns'][0]}
                FOREIGN KEY ({', '.join(fk['columns'])})
                REFERENCES {fk['references']}
            ''')
            logger.info(f"Added foreign key on {table['name']} referencing {fk['references']}")

        for idx in table.get('indexes', []):
            unique = 'UNIQUE ' if idx.get('unique') else ''
            await conn.execute(f'''
                CREATE {unique}INDEX IF NOT EXISTS {idx['name']}
                ON {table['name']}({', '.join(idx['columns'])})
            ''')
            logger.info(f"Created index {idx['name']} on {table['name']}")

    async def _create_trigger(self, conn, trigger: Dict[str, Any]) -> None:
        await conn.execute(f'''
            CREATE OR REPLACE FUNCTION {trigger['function_name']}()
            RETURNS TRIGGER
            AS $${trigger['function_body']}$$
            LANGUAGE plpgsql;
        ''')
        await conn.execute(f"DROP TRIGGER IF EXISTS {trigger['name']} ON {trigger['table']}")
        await conn.execute(f'''
            CREATE TRIGGER {trigger['name']}
            {trigger['timing']} {trigger['event']} ON {trigger['table']}
            FOR EACH ROW
            EXECUTE FUNCTION {trigger['function_name']}();
        ''')
        logger.info(f"Created trigger {trigger['name']} on {trigger['table']}")
