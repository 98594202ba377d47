"""
Schema for the import tables, one variant per database backend.
"""

SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS imported_sites (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  root_url TEXT NOT NULL,
  status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending','crawling','completed','failed','cancelled')),
  page_count INTEGER NOT NULL DEFAULT 0,
  config_json TEXT,
  platform TEXT,
  created_at INTEGER NOT NULL,
  updated_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS staged_items (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  site_id INTEGER NOT NULL,
  url TEXT NOT NULL,
  title TEXT,
  item_type TEXT NOT NULL DEFAULT 'page' CHECK (item_type IN ('page','product')),
  raw_html TEXT,
  structural_hash TEXT,
  metadata_json TEXT,
  status TEXT NOT NULL DEFAULT 'completed',
  created_at INTEGER NOT NULL,
  updated_at INTEGER NOT NULL,
  FOREIGN KEY (site_id) REFERENCES imported_sites (id) ON DELETE CASCADE,
  UNIQUE(site_id, url)
);

CREATE INDEX IF NOT EXISTS idx_staged_items_structure ON staged_items(site_id, structural_hash)
"""

POSTGRES_SCHEMA = """
CREATE TABLE IF NOT EXISTS imported_sites (
  id SERIAL PRIMARY KEY,
  root_url TEXT NOT NULL,
  status VARCHAR(20) NOT NULL DEFAULT 'pending' CHECK (status IN ('pending','crawling','completed','failed','cancelled')),
  page_count INTEGER NOT NULL DEFAULT 0,
  config_json TEXT,
  platform VARCHAR(50),
  created_at BIGINT NOT NULL,
  updated_at BIGINT NOT NULL
);

CREATE TABLE IF NOT EXISTS staged_items (
  id SERIAL PRIMARY KEY,
  site_id INTEGER NOT NULL REFERENCES imported_sites (id) ON DELETE CASCADE,
  url TEXT NOT NULL,
  title VARCHAR(255),
  item_type VARCHAR(20) NOT NULL DEFAULT 'page' CHECK (item_type IN ('page','product')),
  raw_html TEXT,
  structural_hash VARCHAR(64),
  metadata_json TEXT,
  status VARCHAR(20) NOT NULL DEFAULT 'completed',
  created_at BIGINT NOT NULL,
  updated_at BIGINT NOT NULL,
  UNIQUE (site_id, url)
);

CREATE INDEX IF NOT EXISTS idx_staged_items_structure ON staged_items(site_id, structural_hash)
"""


def get_schema_statements(backend: str) -> list[str]:
    schema = POSTGRES_SCHEMA if backend == "postgresql" else SQLITE_SCHEMA
    return [stmt.strip() for stmt in schema.split(";\n") if stmt.strip()]
