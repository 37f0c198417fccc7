"""SQLite database connection and schema initialization."""

from pathlib import Path

import aiosqlite

# Global connection holder
_db_connection: aiosqlite.Connection | None = None


async def init_database(db_path: str) -> None:
    """Initialize the database connection and create schema."""
    global _db_connection

    # Ensure the data directory exists
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    _db_connection = await aiosqlite.connect(db_path)
    _db_connection.row_factory = aiosqlite.Row

    # Enable foreign keys
    await _db_connection.execute("PRAGMA foreign_keys = ON")

    await _create_schema(_db_connection)


async def close_database() -> None:
    """Close the database connection."""
    global _db_connection
    if _db_connection:
        await _db_connection.close()
        _db_connection = None


async def get_db() -> aiosqlite.Connection:
    """Get the database connection."""
    if _db_connection is None:
        raise RuntimeError("Database not initialized. Call init_database first.")
    return _db_connection


async def _create_schema(db: aiosqlite.Connection) -> None:
    """Create database tables and indexes."""
    # =========================================================================
    # Forms and responses
    # =========================================================================
    await db.execute("""
        CREATE TABLE IF NOT EXISTS forms (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            description TEXT,
            schema_json TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS responses (
            id TEXT PRIMARY KEY,
            form_id TEXT NOT NULL,
            data_json TEXT NOT NULL DEFAULT '{}',
            created_by TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT,
            FOREIGN KEY (form_id) REFERENCES forms(id) ON DELETE CASCADE
        )
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_responses_form
        ON responses(form_id, created_at)
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_responses_created_by
        ON responses(created_by)
    """)

    # =========================================================================
    # Workflows
    # =========================================================================
    await db.execute("""
        CREATE TABLE IF NOT EXISTS workflows (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            description TEXT,
            schema_json TEXT NOT NULL DEFAULT '{}',
            trigger_form_id TEXT,
            status TEXT NOT NULL DEFAULT 'draft',
            active_instances INTEGER NOT NULL DEFAULT 0,
            completed_instances INTEGER NOT NULL DEFAULT 0,
            created_by TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            FOREIGN KEY (trigger_form_id) REFERENCES forms(id) ON DELETE SET NULL
        )
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_workflows_status
        ON workflows(status)
    """)

    # =========================================================================
    # Tasks
    # =========================================================================
    # step_json, status_json and task_data_json may hold legacy values that
    # are not valid JSON objects; readers parse them defensively.
    await db.execute("""
        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            workflow_id TEXT,
            step_json TEXT,
            assigned_to TEXT,
            created_by TEXT,
            status_json TEXT,
            task_data_json TEXT,
            due_date TEXT,
            completed_at TEXT,
            notes TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            FOREIGN KEY (workflow_id) REFERENCES workflows(id) ON DELETE CASCADE
        )
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_tasks_assigned
        ON tasks(assigned_to, created_at)
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS task_responses (
            task_id TEXT NOT NULL,
            response_id TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            PRIMARY KEY (task_id, response_id),
            FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE,
            FOREIGN KEY (response_id) REFERENCES responses(id) ON DELETE CASCADE
        )
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_task_responses_response
        ON task_responses(response_id)
    """)

    await db.commit()
