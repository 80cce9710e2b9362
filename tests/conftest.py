"""Shared fixtures for session tag filter tests."""

import pytest

import tags_db
from tag_filters import TagStore


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def tmp_db(tmp_path, monkeypatch):
    """Provide an isolated SQLite DB in tmp_path.

    Monkeypatches tags_db.DB_PATH so all tags_db functions
    use the temporary database instead of the real one.
    """
    db_dir = tmp_path / "data"
    db_dir.mkdir()
    db_path = db_dir / "tags.db"
    monkeypatch.setattr(tags_db, "DB_PATH", db_path)
    conn = tags_db.init_db()
    yield conn
    conn.close()


# ---------------------------------------------------------------------------
# Sample catalog
# ---------------------------------------------------------------------------
SAMPLE_SESSIONS = [
    ("s1", "alpha", "Add login form", "2025-06-01T10:00:00Z"),
    ("s2", "alpha", "Spike on OAuth flow", "2025-06-02T10:00:00Z"),
    ("s3", "beta", "Fix crash on startup", "2025-06-03T10:00:00Z"),
    ("s4", "beta", "Fix flaky test", "2025-06-04T10:00:00Z"),
    ("s5", "gamma", "Question about regex", "2025-06-05T10:00:00Z"),
]

SAMPLE_TAGS = [
    ("feature", "#22c55e"),
    ("bugfix", "#ef4444"),
    ("wip", "#eab308"),
    ("docs", "#3b82f6"),
]

# s5 is untagged, docs is attached to nothing
SAMPLE_SESSION_TAGS = {
    "s1": ["feature"],
    "s2": ["feature", "wip"],
    "s3": ["bugfix"],
    "s4": ["bugfix", "wip"],
}


@pytest.fixture()
def seeded_db(tmp_db):
    """tmp_db populated with SAMPLE_SESSIONS, SAMPLE_TAGS and their links."""
    for session_id, project, title, started_at in SAMPLE_SESSIONS:
        tags_db.upsert_session(tmp_db, session_id, project, title, started_at)
    tmp_db.commit()

    for name, color in SAMPLE_TAGS:
        tags_db.create_tag(tmp_db, name, color)

    ids = {t["name"]: t["id"] for t in tags_db.get_all_tags(tmp_db)}
    for session_id, names in SAMPLE_SESSION_TAGS.items():
        for name in names:
            tags_db.add_tag_to_session(tmp_db, session_id, ids[name])
    return tmp_db


@pytest.fixture()
def tag_ids(seeded_db):
    """Map of tag name -> id in the seeded catalog."""
    return {t["name"]: t["id"] for t in tags_db.get_all_tags(seeded_db)}


@pytest.fixture()
def store(seeded_db):
    return tags_db.SqliteStore(seeded_db)


# ---------------------------------------------------------------------------
# In-memory store double
# ---------------------------------------------------------------------------
class FakeStore(TagStore):
    """Records every query; knows a fixed set of tag ids and result rows."""

    def __init__(self, tag_ids=(), rows=(), error=None):
        self.tag_ids = set(tag_ids)
        self.rows = [(r,) for r in rows]
        self.error = error
        self.calls = []

    def query_one(self, sql, params=()):
        self.calls.append((sql, list(params)))
        return (params[0],) if params[0] in self.tag_ids else None

    def query_all(self, sql, params=()):
        self.calls.append((sql, list(params)))
        if self.error is not None:
            raise self.error
        return list(self.rows)


@pytest.fixture()
def fake_store():
    """Factory for FakeStore instances."""
    return FakeStore


# ---------------------------------------------------------------------------
# FastAPI test client
# ---------------------------------------------------------------------------
@pytest.fixture()
def client(seeded_db):
    """FastAPI TestClient over the seeded temporary database."""
    from fastapi.testclient import TestClient

    import app as app_module

    with TestClient(app_module.app, raise_server_exceptions=False) as tc:
        yield tc
