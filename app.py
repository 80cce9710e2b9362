"""
FastAPI service for tag-based session filtering.

Exposes the tag catalog, session-tag associations and boolean tag filters
(AND/OR/NOT trees compiled to SQL set operations) over HTTP. One SQLite
connection is opened per request.

Deployment: uvicorn app:app --host 127.0.0.1 --port 8203
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Response
from pydantic import BaseModel, Field

from tag_filters import (
    CompileError,
    ExpressionError,
    ParseError,
    ResolutionError,
    build_tag_filter_query,
    expression_from_dict,
    get_filtered_session_ids,
    parse_filter,
    resolve_tag_names,
    validate_expression,
    validate_tag_ids,
)
from tags_db import (
    SqliteStore,
    init_db,
    get_connection,
    get_session_list,
    get_filtered_sessions,
    get_all_tags,
    get_tag,
    get_tag_by_name,
    lookup_tag,
    create_tag,
    delete_tag,
    add_tag_to_session,
    remove_tag_from_session,
    get_session_tags,
)

logger = logging.getLogger("session-tags")


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------
class TagCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    color: str = Field(pattern=r"^#[0-9a-fA-F]{6}$")


class FilterRequest(BaseModel):
    expression: dict[str, Any]
    strict: bool = False


# ---------------------------------------------------------------------------
# App lifecycle
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the schema on startup."""
    init_db().close()
    logger.info("Tag database ready")
    yield


app = FastAPI(
    title="Session Tag Filters",
    lifespan=lifespan,
)


def _to_expression(data: dict[str, Any]):
    try:
        return expression_from_dict(data)
    except ExpressionError as e:
        raise HTTPException(status_code=422, detail=str(e))


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/api/tags")
def api_tags():
    """All tags, ordered by name."""
    conn = get_connection()
    try:
        return get_all_tags(conn)
    finally:
        conn.close()


@app.post("/api/tags", status_code=201)
def api_create_tag(body: TagCreate):
    conn = get_connection()
    try:
        if not create_tag(conn, body.name, body.color):
            raise HTTPException(status_code=409, detail=f"Tag '{body.name}' already exists")
        return get_tag_by_name(conn, body.name)
    finally:
        conn.close()


@app.get("/api/tags/{tag_id}")
def api_tag(tag_id: int):
    conn = get_connection()
    try:
        tag = get_tag(conn, tag_id)
    finally:
        conn.close()
    if not tag:
        raise HTTPException(status_code=404, detail="Tag not found")
    return tag


@app.delete("/api/tags/{tag_id}", status_code=204)
def api_delete_tag(tag_id: int):
    conn = get_connection()
    try:
        delete_tag(conn, tag_id)
    finally:
        conn.close()
    return Response(status_code=204)


@app.get("/api/session/{session_id}/tags")
def api_session_tags(session_id: str):
    conn = get_connection()
    try:
        return get_session_tags(conn, session_id)
    finally:
        conn.close()


@app.put("/api/session/{session_id}/tags/{tag_id}")
def api_add_session_tag(session_id: str, tag_id: int):
    """Attach a tag to a session (idempotent)."""
    conn = get_connection()
    try:
        added = add_tag_to_session(conn, session_id, tag_id)
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=404, detail="Session or tag not found")
    finally:
        conn.close()
    return {"added": added}


@app.delete("/api/session/{session_id}/tags/{tag_id}", status_code=204)
def api_remove_session_tag(session_id: str, tag_id: int):
    conn = get_connection()
    try:
        remove_tag_from_session(conn, session_id, tag_id)
    finally:
        conn.close()
    return Response(status_code=204)


@app.get("/api/sessions")
def api_sessions(filter_text: str | None = Query(default=None, alias="filter")):
    """Session summaries, narrowed by filter text like ``#a AND NOT #b``."""
    conn = get_connection()
    try:
        if not filter_text:
            return get_session_list(conn)
        try:
            expression = resolve_tag_names(
                parse_filter(filter_text), lambda name: lookup_tag(conn, name)
            )
        except (ParseError, ResolutionError) as e:
            raise HTTPException(status_code=400, detail=str(e))
        query = build_tag_filter_query(expression, dialect=SqliteStore.dialect)
        return get_filtered_sessions(conn, query.where_clause, query.params)
    finally:
        conn.close()


@app.post("/api/tag-filter/compile")
def api_compile_filter(body: FilterRequest):
    """Return the WHERE clause and parameters for an expression tree."""
    expression = _to_expression(body.expression)
    try:
        return build_tag_filter_query(expression, strict=body.strict).to_dict()
    except CompileError as e:
        raise HTTPException(
            status_code=422, detail={"message": e.reason, "path": e.path}
        )


@app.post("/api/tag-filter/validate")
def api_validate_filter(body: FilterRequest):
    """Check structure and that every referenced tag exists."""
    structure = validate_expression(body.expression)
    try:
        expression = expression_from_dict(body.expression)
    except ExpressionError as e:
        return {"valid": False, "missingIds": [], "errors": structure.errors or [str(e)]}
    conn = get_connection()
    try:
        result = validate_tag_ids(SqliteStore(conn), expression)
    finally:
        conn.close()
    return {**result.to_dict(), "errors": structure.errors}


@app.post("/api/tag-filter/sessions")
def api_filter_sessions(body: FilterRequest):
    """Ids of sessions matching an expression tree."""
    expression = _to_expression(body.expression)
    if body.strict:
        try:
            build_tag_filter_query(expression, strict=True)
        except CompileError as e:
            raise HTTPException(
                status_code=422, detail={"message": e.reason, "path": e.path}
            )
    conn = get_connection()
    try:
        return {"sessionIds": get_filtered_session_ids(SqliteStore(conn), expression)}
    finally:
        conn.close()
