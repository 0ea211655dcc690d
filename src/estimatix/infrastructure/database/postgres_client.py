"""
Estimatix - PostgreSQL Database Client

Implementation of DatabaseClient protocol using psycopg2.
"""
import logging
from contextlib import contextmanager
from typing import Any, Generator

from psycopg2 import sql
from psycopg2.extras import Json, RealDictCursor
from psycopg2.pool import SimpleConnectionPool

from estimatix.domain.interfaces.database import Filters, Row
from estimatix.domain.models.config import DatabaseConfig
from estimatix.domain.exceptions import DatabaseError, ConnectionError as EstimatixConnectionError, QueryError

logger = logging.getLogger(__name__)


SCHEMA: dict[str, str] = {
    "profiles": """
        CREATE TABLE IF NOT EXISTS profiles (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL UNIQUE,
            full_name TEXT,
            company_name TEXT,
            region TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    "projects": """
        CREATE TABLE IF NOT EXISTS projects (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            title VARCHAR(500) NOT NULL,
            client_name TEXT,
            owner_name TEXT,
            project_address TEXT,
            notes TEXT,
            status VARCHAR(20) NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'active', 'completed')),
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    "estimates": """
        CREATE TABLE IF NOT EXISTS estimates (
            id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            status VARCHAR(20) NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'bid_final', 'contract_signed', 'completed')),
            total DOUBLE PRECISION DEFAULT 0,
            json_data JSONB,
            ai_summary TEXT,
            spec_sheet_url TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    "rooms": """
        CREATE TABLE IF NOT EXISTS rooms (
            id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            type TEXT,
            level TEXT,
            source VARCHAR(20) DEFAULT 'manual',
            is_in_scope BOOLEAN DEFAULT TRUE,
            notes TEXT,
            length_ft DOUBLE PRECISION,
            width_ft DOUBLE PRECISION,
            ceiling_height_ft DOUBLE PRECISION DEFAULT 8,
            floor_area_sqft DOUBLE PRECISION,
            wall_area_sqft DOUBLE PRECISION,
            ceiling_area_sqft DOUBLE PRECISION,
            area_sqft DOUBLE PRECISION,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    "selections": """
        CREATE TABLE IF NOT EXISTS selections (
            id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            estimate_id TEXT REFERENCES estimates(id) ON DELETE SET NULL,
            title TEXT NOT NULL,
            cost_code VARCHAR(20),
            room_id TEXT REFERENCES rooms(id) ON DELETE SET NULL,
            category TEXT,
            description TEXT,
            allowance DOUBLE PRECISION,
            suggested_allowance DOUBLE PRECISION,
            subcontractor TEXT,
            source VARCHAR(20) DEFAULT 'manual',
            notes TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    "estimate_line_items": """
        CREATE TABLE IF NOT EXISTS estimate_line_items (
            id TEXT PRIMARY KEY,
            estimate_id TEXT NOT NULL REFERENCES estimates(id) ON DELETE CASCADE,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            room_id TEXT REFERENCES rooms(id) ON DELETE SET NULL,
            selection_id TEXT REFERENCES selections(id) ON DELETE SET NULL,
            cost_code VARCHAR(20),
            category TEXT,
            description VARCHAR(2000) NOT NULL DEFAULT '',
            quantity DOUBLE PRECISION,
            unit TEXT,
            unit_cost DOUBLE PRECISION,
            labor_cost DOUBLE PRECISION,
            material_cost DOUBLE PRECISION,
            overhead_cost DOUBLE PRECISION,
            direct_cost DOUBLE PRECISION,
            margin_percent DOUBLE PRECISION DEFAULT 30,
            client_price DOUBLE PRECISION,
            is_allowance BOOLEAN DEFAULT FALSE,
            allowance_amount DOUBLE PRECISION,
            subcontractor TEXT,
            allowance_notes TEXT,
            pricing_source VARCHAR(20),
            calc_source VARCHAR(20) DEFAULT 'manual',
            task_library_id TEXT,
            is_active BOOLEAN DEFAULT TRUE,
            notes TEXT,
            confidence DOUBLE PRECISION,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    "proposals": """
        CREATE TABLE IF NOT EXISTS proposals (
            id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            estimate_id TEXT NOT NULL REFERENCES estimates(id) ON DELETE CASCADE,
            version INTEGER NOT NULL DEFAULT 1,
            title TEXT NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'sent', 'approved', 'rejected')),
            total_price DOUBLE PRECISION DEFAULT 0,
            body_json JSONB,
            pdf_url TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            UNIQUE(project_id, version)
        )
    """,
    "proposal_events": """
        CREATE TABLE IF NOT EXISTS proposal_events (
            id TEXT PRIMARY KEY,
            proposal_id TEXT NOT NULL REFERENCES proposals(id) ON DELETE CASCADE,
            event_type VARCHAR(20) NOT NULL,
            metadata JSONB,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    "contracts": """
        CREATE TABLE IF NOT EXISTS contracts (
            id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            proposal_id TEXT REFERENCES proposals(id) ON DELETE SET NULL,
            total_price DOUBLE PRECISION DEFAULT 0,
            down_payment DOUBLE PRECISION DEFAULT 0,
            start_date DATE,
            completion_date DATE,
            payment_schedule JSONB,
            legal_text JSONB,
            status VARCHAR(20) NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'sent', 'signed')),
            pdf_url TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    "job_tasks": """
        CREATE TABLE IF NOT EXISTS job_tasks (
            id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            contract_id TEXT REFERENCES contracts(id) ON DELETE SET NULL,
            original_line_item_id TEXT,
            description TEXT NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'scheduled', 'completed')),
            price DOUBLE PRECISION DEFAULT 0,
            billed_amount DOUBLE PRECISION DEFAULT 0,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    "invoices": """
        CREATE TABLE IF NOT EXISTS invoices (
            id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            invoice_number VARCHAR(20) NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'sent', 'paid', 'overdue')),
            total_amount DOUBLE PRECISION DEFAULT 0,
            issued_date DATE,
            due_date DATE,
            pdf_url TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    "invoice_items": """
        CREATE TABLE IF NOT EXISTS invoice_items (
            id TEXT PRIMARY KEY,
            invoice_id TEXT NOT NULL REFERENCES invoices(id) ON DELETE CASCADE,
            task_id TEXT REFERENCES job_tasks(id) ON DELETE SET NULL,
            description TEXT,
            amount DOUBLE PRECISION NOT NULL
        )
    """,
    "project_actuals": """
        CREATE TABLE IF NOT EXISTS project_actuals (
            id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL UNIQUE REFERENCES projects(id) ON DELETE CASCADE,
            total_actual_cost DOUBLE PRECISION NOT NULL,
            total_estimated_cost DOUBLE PRECISION,
            variance_amount DOUBLE PRECISION,
            variance_percent DOUBLE PRECISION,
            actual_labor_cost DOUBLE PRECISION,
            actual_material_cost DOUBLE PRECISION,
            actual_labor_hours DOUBLE PRECISION,
            notes TEXT,
            closed_at TIMESTAMPTZ,
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    "line_item_actuals": """
        CREATE TABLE IF NOT EXISTS line_item_actuals (
            id TEXT PRIMARY KEY,
            line_item_id TEXT NOT NULL UNIQUE REFERENCES estimate_line_items(id) ON DELETE CASCADE,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            actual_unit_cost DOUBLE PRECISION NOT NULL,
            actual_quantity DOUBLE PRECISION,
            actual_direct_cost DOUBLE PRECISION,
            estimated_direct_cost DOUBLE PRECISION,
            variance_amount DOUBLE PRECISION,
            variance_percent DOUBLE PRECISION,
            notes TEXT
        )
    """,
    "task_library": """
        CREATE TABLE IF NOT EXISTS task_library (
            id TEXT PRIMARY KEY,
            cost_code VARCHAR(20),
            description TEXT NOT NULL,
            unit TEXT,
            region TEXT,
            unit_cost_low DOUBLE PRECISION,
            unit_cost_mid DOUBLE PRECISION,
            unit_cost_high DOUBLE PRECISION,
            labor_hours_per_unit DOUBLE PRECISION,
            material_cost_per_unit DOUBLE PRECISION
        )
    """,
    "user_cost_library": """
        CREATE TABLE IF NOT EXISTS user_cost_library (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            task_key TEXT NOT NULL,
            cost_code VARCHAR(20),
            description TEXT,
            unit TEXT,
            region TEXT,
            unit_cost DOUBLE PRECISION NOT NULL,
            times_used INTEGER DEFAULT 1,
            source VARCHAR(20) DEFAULT 'estimate',
            is_actual BOOLEAN DEFAULT FALSE,
            last_used_at TIMESTAMPTZ DEFAULT NOW(),
            UNIQUE(user_id, task_key, region)
        )
    """,
    "user_margin_rules": """
        CREATE TABLE IF NOT EXISTS user_margin_rules (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            scope TEXT NOT NULL,
            margin_percent DOUBLE PRECISION NOT NULL,
            UNIQUE(user_id, scope)
        )
    """,
    "pricing_events": """
        CREATE TABLE IF NOT EXISTS pricing_events (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            estimate_id TEXT REFERENCES estimates(id) ON DELETE CASCADE,
            line_item_id TEXT,
            stage VARCHAR(20) NOT NULL,
            task_key TEXT,
            pricing_source VARCHAR(20),
            unit_cost DOUBLE PRECISION,
            quantity DOUBLE PRECISION,
            direct_cost DOUBLE PRECISION,
            client_price DOUBLE PRECISION,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    "uploads": """
        CREATE TABLE IF NOT EXISTS uploads (
            id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            kind VARCHAR(20) NOT NULL CHECK (kind IN ('photo', 'blueprint', 'audio')),
            storage_path TEXT NOT NULL,
            filename TEXT NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'queued',
            client_transcript TEXT,
            transcript TEXT,
            estimate_id TEXT REFERENCES estimates(id) ON DELETE SET NULL,
            error TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    "plan_parses": """
        CREATE TABLE IF NOT EXISTS plan_parses (
            id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            estimate_id TEXT REFERENCES estimates(id) ON DELETE SET NULL,
            file_urls JSONB NOT NULL DEFAULT '[]',
            status VARCHAR(20) NOT NULL DEFAULT 'uploaded'
                CHECK (status IN ('uploaded', 'processing', 'parsed', 'failed', 'applied')),
            parse_result JSONB,
            pages_of_interest JSONB DEFAULT '[]',
            processing_time_ms INTEGER,
            error_message TEXT,
            error_code VARCHAR(50),
            applied_rooms_count INTEGER DEFAULT 0,
            applied_line_items_count INTEGER DEFAULT 0,
            excluded_rooms_count INTEGER DEFAULT 0,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            started_at TIMESTAMPTZ,
            parsed_at TIMESTAMPTZ,
            applied_at TIMESTAMPTZ
        )
    """,
    "chat_messages": """
        CREATE TABLE IF NOT EXISTS chat_messages (
            id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            estimate_id TEXT REFERENCES estimates(id) ON DELETE SET NULL,
            role VARCHAR(20) NOT NULL CHECK (role IN ('user', 'assistant', 'system')),
            content TEXT NOT NULL,
            related_action JSONB,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
}

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_projects_user ON projects(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_estimates_project ON estimates(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_line_items_estimate ON estimate_line_items(estimate_id)",
    "CREATE INDEX IF NOT EXISTS idx_line_items_room ON estimate_line_items(room_id)",
    "CREATE INDEX IF NOT EXISTS idx_line_items_selection ON estimate_line_items(selection_id)",
    "CREATE INDEX IF NOT EXISTS idx_rooms_project ON rooms(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_proposals_project ON proposals(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_job_tasks_project ON job_tasks(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_invoices_project ON invoices(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_user_cost_library_user ON user_cost_library(user_id, cost_code)",
    "CREATE INDEX IF NOT EXISTS idx_task_library_code ON task_library(cost_code, region)",
    "CREATE INDEX IF NOT EXISTS idx_plan_parses_project ON plan_parses(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_chat_messages_project ON chat_messages(project_id, created_at)",
]


def _adapt(value: Any) -> Any:
    """Wrap dict/list values for JSONB columns."""
    if isinstance(value, (dict, list)):
        return Json(value)
    return value


class PostgresClient:
    """
    PostgreSQL database client implementation.

    Implements DatabaseClient protocol using psycopg2 with connection pooling.
    """

    def __init__(self, config: DatabaseConfig):
        """
        Initialize PostgreSQL client.

        Args:
            config: Database configuration

        Raises:
            ConnectionError: If connection pool creation fails
        """
        self.config = config
        try:
            self.pool = SimpleConnectionPool(
                config.pool_min_size,
                config.pool_max_size,
                host=config.host,
                port=config.port,
                database=config.database,
                user=config.user,
                password=config.password
            )
            logger.info(f"PostgreSQL connection pool created (min={config.pool_min_size}, max={config.pool_max_size})")
        except Exception as e:
            logger.error(f"Failed to create connection pool: {e}", exc_info=True)
            raise EstimatixConnectionError(f"Failed to connect to database: {e}", query=None)

    @contextmanager
    def get_connection(self) -> Generator[Any, None, None]:
        """
        Get database connection from pool (context manager).

        Yields:
            psycopg2 connection

        Raises:
            ConnectionError: If connection cannot be obtained
        """
        conn = None
        try:
            conn = self.pool.getconn()
            yield conn
        except Exception as e:
            logger.error(f"Connection error: {e}", exc_info=True)
            if conn:
                conn.rollback()
            raise EstimatixConnectionError(f"Database connection error: {e}", query=None)
        finally:
            if conn:
                self.pool.putconn(conn)

    def init_schema(self) -> bool:
        """
        Initialize database schema (tables, indexes).

        Returns:
            True if successful

        Raises:
            DatabaseError: If initialization fails
        """
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cur:
                    for ddl in SCHEMA.values():
                        cur.execute(ddl)
                    for index in INDEXES:
                        cur.execute(index)
                    conn.commit()
                    logger.info(f"✅ Database schema initialized ({len(SCHEMA)} tables)")
                    return True

        except Exception as e:
            logger.error(f"Schema initialization failed: {e}", exc_info=True)
            raise DatabaseError(f"Failed to initialize schema: {e}", query=None)

    def close(self) -> None:
        self.pool.closeall()

    # Query building

    @staticmethod
    def _table(table: str) -> sql.Identifier:
        if table not in SCHEMA:
            raise QueryError(f"Unknown table: {table}", query=table)
        return sql.Identifier(table)

    @staticmethod
    def _where(filters: Filters | None) -> tuple[sql.Composable, list[Any]]:
        if not filters:
            return sql.SQL(""), []

        clauses = []
        params: list[Any] = []
        for column, value in filters.items():
            ident = sql.Identifier(column)
            if value is None:
                clauses.append(sql.SQL("{} IS NULL").format(ident))
            elif isinstance(value, (list, tuple, set)):
                if not value:
                    clauses.append(sql.SQL("FALSE"))
                    continue
                clauses.append(sql.SQL("{} = ANY(%s)").format(ident))
                params.append(list(value))
            else:
                clauses.append(sql.SQL("{} = %s").format(ident))
                params.append(value)
        return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses), params

    def _execute(self, query: sql.Composable, params: list[Any], fetch: str | None, label: str) -> Any:
        try:
            with self.get_connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(query, params)
                    if fetch == "one":
                        result = cur.fetchone()
                        result = dict(result) if result else None
                    elif fetch == "all":
                        result = [dict(r) for r in cur.fetchall()]
                    else:
                        result = cur.rowcount
                    conn.commit()
                    return result

        except QueryError:
            raise
        except Exception as e:
            logger.error(f"{label} failed: {e}", exc_info=True)
            raise QueryError(f"{label} failed: {e}", query=label)

    # DatabaseClient implementation

    def insert(self, table: str, values: Row) -> Row:
        """Insert a row and return it."""
        columns = list(values.keys())
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
            self._table(table),
            sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            sql.SQL(", ").join(sql.Placeholder() * len(columns)),
        )
        row = self._execute(query, [_adapt(values[c]) for c in columns], "one", f"INSERT {table}")
        logger.debug(f"Inserted {table} row {row.get('id') if row else None}")
        return row

    def get(self, table: str, row_id: str) -> Row | None:
        return self.find_one(table, {"id": row_id})

    def find(
        self,
        table: str,
        filters: Filters | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None
    ) -> list[Row]:
        """Select rows matching all filters."""
        where, params = self._where(filters)
        query = sql.SQL("SELECT * FROM {}").format(self._table(table)) + where
        if order_by:
            direction = sql.SQL(" DESC") if descending else sql.SQL(" ASC")
            query += sql.SQL(" ORDER BY {}").format(sql.Identifier(order_by)) + direction
        if limit is not None:
            query += sql.SQL(" LIMIT %s")
            params.append(limit)
        return self._execute(query, params, "all", f"SELECT {table}")

    def find_one(self, table: str, filters: Filters) -> Row | None:
        rows = self.find(table, filters, limit=1)
        return rows[0] if rows else None

    def update(self, table: str, row_id: str, values: Row) -> Row | None:
        """Update a row by id and return it (None if missing)."""
        if not values:
            return self.get(table, row_id)
        columns = list(values.keys())
        query = sql.SQL("UPDATE {} SET {} WHERE id = %s RETURNING *").format(
            self._table(table),
            sql.SQL(", ").join(sql.SQL("{} = %s").format(sql.Identifier(c)) for c in columns),
        )
        params = [_adapt(values[c]) for c in columns] + [row_id]
        return self._execute(query, params, "one", f"UPDATE {table}")

    def update_where(self, table: str, filters: Filters, values: Row) -> int:
        if not values:
            return 0
        columns = list(values.keys())
        where, where_params = self._where(filters)
        query = sql.SQL("UPDATE {} SET {}").format(
            self._table(table),
            sql.SQL(", ").join(sql.SQL("{} = %s").format(sql.Identifier(c)) for c in columns),
        ) + where
        params = [_adapt(values[c]) for c in columns] + where_params
        return self._execute(query, params, None, f"UPDATE {table}")

    def delete(self, table: str, row_id: str) -> bool:
        deleted = self.delete_where(table, {"id": row_id}) > 0
        if deleted:
            logger.info(f"✅ Deleted {table} row {row_id}")
        return deleted

    def delete_where(self, table: str, filters: Filters) -> int:
        if not filters:
            raise QueryError(f"Refusing unfiltered DELETE on {table}", query=f"DELETE {table}")
        where, params = self._where(filters)
        query = sql.SQL("DELETE FROM {}").format(self._table(table)) + where
        return self._execute(query, params, None, f"DELETE {table}")
