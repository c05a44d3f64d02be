"""Read-only collection of database metadata for the advisor prompt.

Uses SQLAlchemy's runtime inspector through an async engine; nothing here
executes user SQL. Only the first `max_tables` tables are inspected in
detail, and a table whose columns or indexes cannot be read is skipped rather
than failing the whole collection.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import inspect, make_url
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from schemas.advisor import (
    ColumnInfo,
    DbContext,
    DbStats,
    IndexInfo,
    TableRelation,
)
from services.advisor.exceptions import ContextCollectionError


logger = logging.getLogger(__name__)

DEFAULT_MAX_TABLES = 20


def normalize_async_url(url: str) -> str:
    """Coerce common sync database URLs to their async driver."""
    if url.startswith("postgres://"):
        return "postgresql+asyncpg://" + url[len("postgres://") :]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://") :]
    if url.startswith("postgresql+psycopg2://") or url.startswith(
        "postgresql+psycopg://"
    ):
        return "postgresql+asyncpg://" + url.split("://", 1)[1]
    if url.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + url[len("sqlite://") :]
    return url


def _table_columns(
    inspector: Any, table: str, foreign_key_columns: set[str]
) -> list[ColumnInfo]:
    primary_keys = set(
        inspector.get_pk_constraint(table).get("constrained_columns") or []
    )
    return [
        ColumnInfo(
            name=column["name"],
            data_type=str(column.get("type", "UNKNOWN")),
            nullable=column.get("nullable"),
            is_primary_key=column["name"] in primary_keys,
            is_foreign_key=column["name"] in foreign_key_columns,
        )
        for column in inspector.get_columns(table)
    ]


def _table_indexes(inspector: Any, table: str) -> list[IndexInfo]:
    return [
        IndexInfo(
            name=index.get("name") or "(unnamed)",
            columns=[c for c in index.get("column_names", []) if c],
            unique=bool(index.get("unique")),
        )
        for index in inspector.get_indexes(table)
    ]


def _table_relations(inspector: Any, table: str) -> list[TableRelation]:
    relations: list[TableRelation] = []
    for fk in inspector.get_foreign_keys(table):
        pairs = zip(
            fk.get("constrained_columns", []),
            fk.get("referred_columns", []),
            strict=False,
        )
        relations.extend(
            TableRelation(
                from_table=table,
                from_column=local,
                to_table=fk["referred_table"],
                to_column=remote,
            )
            for local, remote in pairs
        )
    return relations


def _inspect_database(
    sync_conn: Connection,
    *,
    dsn: str,
    sql_query: str | None,
    provided_tables: list[str] | None,
    max_tables: int,
) -> DbContext:
    inspector = inspect(sync_conn)

    if provided_tables is not None:
        logger.info("Using %d table(s) provided by the caller", len(provided_tables))
        tables = list(provided_tables)
    else:
        try:
            tables = inspector.get_table_names()
        except SQLAlchemyError as exc:
            raise ContextCollectionError(
                f"Unable to list database tables: {exc}"
            ) from exc

    to_analyze = tables[:max_tables]
    logger.info(
        "Analyzing schema for %d table(s) out of %d", len(to_analyze), len(tables)
    )

    relations: list[TableRelation] = []
    schemas: dict[str, list[ColumnInfo]] = {}
    indexes: dict[str, list[IndexInfo]] = {}
    for table in to_analyze:
        try:
            table_relations = _table_relations(inspector, table)
        except SQLAlchemyError as exc:
            logger.debug("Unable to read relations for %s: %s", table, exc)
            table_relations = []
        relations.extend(table_relations)
        fk_columns = {rel.from_column for rel in table_relations}

        try:
            schemas[table] = _table_columns(inspector, table, fk_columns)
        except SQLAlchemyError as exc:
            logger.debug("Unable to read schema for %s: %s", table, exc)

        try:
            indexes[table] = _table_indexes(inspector, table)
        except SQLAlchemyError as exc:
            logger.debug("Unable to read indexes for %s: %s", table, exc)

    return DbContext(
        dsn=dsn,
        tables=tables,
        schemas=schemas,
        indexes=indexes,
        relations=relations,
        sql_query=sql_query,
        stats=DbStats(
            table_count=len(tables),
            index_count=sum(len(v) for v in indexes.values()),
            estimated_size=None,
        ),
    )


async def collect_context(
    database_url: str,
    sql_query: str | None = None,
    provided_tables: list[str] | None = None,
    *,
    max_tables: int = DEFAULT_MAX_TABLES,
    engine: AsyncEngine | None = None,
) -> DbContext:
    """Collect tables, columns, indexes and relations of a database.

    Args:
        database_url: SQLAlchemy URL (sync URLs are mapped to async drivers).
        sql_query: Optional statement to analyze; stored, never executed.
        provided_tables: Table names to use instead of discovering them.
        max_tables: Number of tables inspected in detail.
        engine: Existing engine to use; otherwise one is created and disposed.

    Raises:
        ContextCollectionError: If the database cannot be reached or listed.
    """
    logger.info("Collecting database context")
    owns_engine = engine is None
    try:
        safe_dsn = make_url(database_url).render_as_string(hide_password=True)
        if engine is None:
            engine = create_async_engine(normalize_async_url(database_url))
        async with engine.connect() as conn:
            return await conn.run_sync(
                lambda sync_conn: _inspect_database(
                    sync_conn,
                    dsn=safe_dsn,
                    sql_query=sql_query,
                    provided_tables=provided_tables,
                    max_tables=max_tables,
                )
            )
    except SQLAlchemyError as exc:
        raise ContextCollectionError(
            f"Unable to connect to database: {exc.__class__.__name__}"
        ) from exc
    finally:
        if owns_engine and engine is not None:
            await engine.dispose()
