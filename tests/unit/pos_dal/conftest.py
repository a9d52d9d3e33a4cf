import pytest
import pytest_asyncio

from pos_dal.client import PosClient
from pos_dal.config import DalSettings
from pos_dal.sqlite import SqliteStore

POS_SCHEMA = """
CREATE TABLE users (id TEXT PRIMARY KEY, name TEXT NOT NULL, role TEXT);
CREATE TABLE tables (id TEXT PRIMARY KEY, number INTEGER, status TEXT);
CREATE TABLE customers (id TEXT PRIMARY KEY, name TEXT);
CREATE TABLE categories (id TEXT PRIMARY KEY, name TEXT);
CREATE TABLE menu_items (
    id TEXT PRIMARY KEY,
    name TEXT,
    categoryId TEXT,
    price REAL,
    ingredients TEXT,
    available INTEGER
);
CREATE TABLE orders (
    id TEXT PRIMARY KEY,
    status TEXT,
    total REAL,
    tableId TEXT,
    userId TEXT,
    customerId TEXT,
    notes TEXT,
    createdAt TEXT
);
CREATE TABLE order_items (
    id TEXT PRIMARY KEY,
    orderId TEXT NOT NULL,
    menuItemId TEXT,
    quantity INTEGER,
    price REAL
);
CREATE TABLE payments (id TEXT PRIMARY KEY, orderId TEXT, amount REAL, method TEXT);
CREATE TABLE settings (id TEXT PRIMARY KEY, key TEXT UNIQUE NOT NULL, value TEXT);
"""


@pytest.fixture
def settings() -> DalSettings:
    return DalSettings(db_path=":memory:", journal_mode="MEMORY")


@pytest_asyncio.fixture
async def store(settings):
    """Connected in-memory store with the point-of-sale test schema."""
    store = SqliteStore(settings)
    await store.executescript(POS_SCHEMA)
    yield store
    await store.close()


@pytest_asyncio.fixture
async def client(store, settings):
    yield PosClient(store=store, settings=settings)
