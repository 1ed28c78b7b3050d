"""Shared fixtures: the sample schema directory and a seeded in-memory database."""

from pathlib import Path

import pytest
from sqlalchemy import text

from crudforge.config import CrudConfig
from crudforge.persistence.config import DatabaseConfig, create_engine_from_config
from crudforge.service import CrudService

# Sample schema documents shipped at the repository root
_REPO_ROOT = Path(__file__).resolve().parents[2]
SCHEMA_DIR = _REPO_ROOT / "schema" / "crud6"

_DDL = [
    """
    CREATE TABLE groups (
        id          INTEGER PRIMARY KEY,
        slug        TEXT NOT NULL,
        name        TEXT NOT NULL,
        description TEXT,
        icon        TEXT
    )
    """,
    """
    CREATE TABLE users (
        id           INTEGER PRIMARY KEY,
        user_name    TEXT NOT NULL,
        first_name   TEXT NOT NULL,
        last_name    TEXT NOT NULL,
        email        TEXT NOT NULL,
        group_id     INTEGER,
        flag_enabled INTEGER NOT NULL DEFAULT 1,
        password     TEXT,
        created_at   TEXT,
        deleted_at   TEXT
    )
    """,
    """
    CREATE TABLE roles (
        id          INTEGER PRIMARY KEY,
        slug        TEXT NOT NULL,
        name        TEXT NOT NULL,
        description TEXT
    )
    """,
    """
    CREATE TABLE permissions (
        id          INTEGER PRIMARY KEY,
        slug        TEXT NOT NULL,
        name        TEXT NOT NULL,
        conditions  TEXT,
        description TEXT
    )
    """,
    "CREATE TABLE role_users (user_id INTEGER NOT NULL, role_id INTEGER NOT NULL)",
    "CREATE TABLE permission_roles (permission_id INTEGER NOT NULL, role_id INTEGER NOT NULL)",
    """
    CREATE TABLE activities (
        id          INTEGER PRIMARY KEY,
        user_id     INTEGER NOT NULL,
        type        TEXT NOT NULL,
        occurred_at TEXT NOT NULL,
        description TEXT,
        ip_address  TEXT
    )
    """,
]

_SEED = [
    (
        "INSERT INTO groups (id, slug, name, description) VALUES (:id, :slug, :name, :description)",
        [
            {"id": 1, "slug": "terran", "name": "Terran", "description": "The terrans"},
            {"id": 2, "slug": "zerg", "name": "Zerg", "description": "The swarm"},
        ],
    ),
    (
        """
        INSERT INTO users
            (id, user_name, first_name, last_name, email, group_id, flag_enabled,
             password, created_at, deleted_at)
        VALUES
            (:id, :user_name, :first_name, :last_name, :email, :group_id, :flag_enabled,
             :password, :created_at, :deleted_at)
        """,
        [
            {"id": 1, "user_name": "admin", "first_name": "Alex", "last_name": "Admin",
             "email": "admin@example.com", "group_id": 1, "flag_enabled": 1,
             "password": "$2y$10$hash1", "created_at": "2024-01-05 10:00:00", "deleted_at": None},
            {"id": 2, "user_name": "bob", "first_name": "Bob", "last_name": "Builder",
             "email": "bob@example.com", "group_id": 1, "flag_enabled": 1,
             "password": "$2y$10$hash2", "created_at": "2024-02-10 09:30:00", "deleted_at": None},
            {"id": 3, "user_name": "carol", "first_name": "Carol", "last_name": "Smith",
             "email": "carol@example.org", "group_id": 2, "flag_enabled": 0,
             "password": "$2y$10$hash3", "created_at": "2024-03-15 14:00:00", "deleted_at": None},
            {"id": 4, "user_name": "dave", "first_name": "Dave", "last_name": "Smith",
             "email": "dave@example.org", "group_id": 2, "flag_enabled": 1,
             "password": "$2y$10$hash4", "created_at": "2024-04-20 08:15:00", "deleted_at": None},
            {"id": 5, "user_name": "erin", "first_name": "Erin", "last_name": "Gone",
             "email": "erin@example.com", "group_id": 1, "flag_enabled": 1,
             "password": "$2y$10$hash5", "created_at": "2024-05-01 12:00:00",
             "deleted_at": "2024-06-01 12:00:00"},
        ],
    ),
    (
        "INSERT INTO roles (id, slug, name, description) VALUES (:id, :slug, :name, :description)",
        [
            {"id": 1, "slug": "site-admin", "name": "Site Administrator", "description": "Everything"},
            {"id": 2, "slug": "group-admin", "name": "Group Administrator", "description": "Own group"},
            {"id": 3, "slug": "user", "name": "User", "description": "Default role"},
        ],
    ),
    (
        "INSERT INTO permissions (id, slug, name) VALUES (:id, :slug, :name)",
        [
            {"id": 1, "slug": "uri_users", "name": "View users"},
            {"id": 2, "slug": "create_user", "name": "Create user"},
            {"id": 3, "slug": "delete_user", "name": "Delete user"},
            {"id": 4, "slug": "uri_groups", "name": "View groups"},
        ],
    ),
    (
        "INSERT INTO role_users (user_id, role_id) VALUES (:user_id, :role_id)",
        [
            {"user_id": 1, "role_id": 1},
            {"user_id": 1, "role_id": 3},
            {"user_id": 2, "role_id": 2},
            {"user_id": 2, "role_id": 3},
            {"user_id": 3, "role_id": 3},
        ],
    ),
    (
        "INSERT INTO permission_roles (permission_id, role_id) VALUES (:permission_id, :role_id)",
        [
            {"permission_id": 1, "role_id": 1},
            {"permission_id": 2, "role_id": 1},
            {"permission_id": 3, "role_id": 1},
            {"permission_id": 4, "role_id": 1},
            {"permission_id": 1, "role_id": 2},
            {"permission_id": 4, "role_id": 2},
            {"permission_id": 1, "role_id": 3},
        ],
    ),
    (
        """
        INSERT INTO activities (id, user_id, type, occurred_at, description)
        VALUES (:id, :user_id, :type, :occurred_at, :description)
        """,
        [
            {"id": 1, "user_id": 1, "type": "sign_in", "occurred_at": "2024-07-01 08:00:00",
             "description": "Signed in"},
            {"id": 2, "user_id": 1, "type": "sign_out", "occurred_at": "2024-07-01 17:00:00",
             "description": "Signed out"},
            {"id": 3, "user_id": 2, "type": "sign_in", "occurred_at": "2024-07-02 09:00:00",
             "description": "Signed in"},
        ],
    ),
]


def seed(engine) -> None:
    """Create the sample tables and insert the sample records."""
    with engine.begin() as conn:
        for ddl in _DDL:
            conn.execute(text(ddl))
        for sql, rows in _SEED:
            conn.execute(text(sql), rows)


@pytest.fixture
def schema_dir() -> Path:
    return SCHEMA_DIR


@pytest.fixture
def engine():
    """In-memory SQLite engine seeded with the sample records."""
    engine = create_engine_from_config(DatabaseConfig(url="sqlite:///:memory:"))
    seed(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def database_url(tmp_path) -> str:
    """URL of a seeded SQLite file, for code that builds its own engine."""
    url = f"sqlite:///{tmp_path / 'crudforge.db'}"
    engine = create_engine_from_config(DatabaseConfig(url=url))
    seed(engine)
    engine.dispose()
    return url


@pytest.fixture
def config(schema_dir) -> CrudConfig:
    return CrudConfig(schema_path=schema_dir, database=DatabaseConfig(url="sqlite:///:memory:"))


@pytest.fixture
def service(config, engine) -> CrudService:
    return CrudService(config, engine=engine)
