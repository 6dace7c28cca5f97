"""
Automatic database migration system.
Compares SQLAlchemy models with the actual database schema and adds missing columns.
"""
import logging
from sqlalchemy import Column, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from taskquest.database import Base
from taskquest import models  # noqa: F401  register all models

logger = logging.getLogger("taskquest.migrations")


def get_default_value(column: Column) -> str:
    """Get a column's default as an SQL literal, or 'NULL'"""
    default = column.default
    if default is None or not hasattr(default, "arg") or callable(default.arg):
        return "NULL"

    value = default.arg
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return f"'{value}'"
    return "NULL"


def build_add_column(engine: Engine, table_name: str, column: Column) -> str:
    """Build the ALTER TABLE statement adding one model column"""
    column_type = column.type.compile(dialect=engine.dialect)
    alter_sql = f"ALTER TABLE {table_name} ADD COLUMN {column.name} {column_type}"

    default_value = get_default_value(column)
    if default_value != "NULL":
        alter_sql += f" DEFAULT {default_value}"
        # NOT NULL can only be added together with a default
        if not column.nullable:
            alter_sql += " NOT NULL"

    return alter_sql


def auto_migrate(engine: Engine) -> int:
    """
    Add columns that exist on the models but not in the database.
    Missing tables are left to Base.metadata.create_all().

    Returns:
        Number of columns added
    """
    logger.info("Starting automatic schema migration...")

    migrations_applied = 0

    with engine.begin() as conn:
        inspector = inspect(conn)
        existing_tables = inspector.get_table_names()

        for table_name, table in Base.metadata.tables.items():
            if table_name not in existing_tables:
                logger.warning(f"Table '{table_name}' doesn't exist. Run create_all() first.")
                continue

            existing_columns = {col["name"] for col in inspector.get_columns(table_name)}

            for column in table.columns:
                if column.name in existing_columns:
                    continue

                alter_sql = build_add_column(engine, table_name, column)
                logger.info(f"Adding column '{column.name}' to table '{table_name}'")
                logger.debug(f"SQL: {alter_sql}")

                try:
                    conn.execute(text(alter_sql))
                    migrations_applied += 1
                except SQLAlchemyError as e:
                    logger.error(f"Failed to add column {table_name}.{column.name}: {e}")
                    raise

    if migrations_applied > 0:
        logger.info(f"Migration completed: {migrations_applied} column(s) added")
    else:
        logger.info("Schema is up to date - no migrations needed")

    return migrations_applied
