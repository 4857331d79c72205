import json
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from src.wiki_import.domain.models import EntityDraft, MediaInfo
from src.wiki_import.domain.rules import normalize_entity_type

EDITOR_ROLES = frozenset({"owner", "admin", "editor"})

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS workspace_members (
        workspace_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        role TEXT NOT NULL,
        PRIMARY KEY (workspace_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entities (
        id TEXT PRIMARY KEY,
        workspace_id TEXT NOT NULL,
        type TEXT NOT NULL,
        title TEXT NOT NULL,
        aliases TEXT NOT NULL DEFAULT '[]',
        tags TEXT NOT NULL DEFAULT '[]',
        status TEXT NOT NULL DEFAULT 'draft',
        main_image_id TEXT,
        infobox_media TEXT,
        created_by TEXT,
        updated_by TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS articles (
        entity_id TEXT PRIMARY KEY,
        workspace_id TEXT NOT NULL,
        base_revision_id TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS article_revisions (
        id TEXT PRIMARY KEY,
        workspace_id TEXT NOT NULL,
        article_id TEXT NOT NULL,
        target_type TEXT NOT NULL DEFAULT 'base',
        body_md TEXT NOT NULL,
        change_summary TEXT,
        status TEXT NOT NULL,
        created_by TEXT,
        approved_at TIMESTAMP,
        approved_by TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS assets (
        id TEXT PRIMARY KEY,
        workspace_id TEXT NOT NULL,
        kind TEXT NOT NULL,
        storage_key TEXT NOT NULL,
        mime_type TEXT NOT NULL,
        size INTEGER,
        width INTEGER,
        height INTEGER,
        source_url TEXT,
        author TEXT,
        license_id TEXT,
        license_url TEXT,
        attribution_text TEXT,
        created_by TEXT,
        retrieved_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS source_records (
        id TEXT PRIMARY KEY,
        workspace_id TEXT NOT NULL,
        target_type TEXT NOT NULL,
        target_id TEXT NOT NULL,
        source_url TEXT,
        title TEXT,
        author TEXT,
        license_id TEXT,
        license_url TEXT,
        attribution_text TEXT,
        note TEXT,
        created_by TEXT,
        retrieved_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_logs (
        id TEXT PRIMARY KEY,
        workspace_id TEXT NOT NULL,
        actor_user_id TEXT,
        action TEXT NOT NULL,
        target_type TEXT NOT NULL,
        target_id TEXT NOT NULL,
        meta TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS llm_templates (
        id TEXT PRIMARY KEY,
        workspace_id TEXT NOT NULL,
        name TEXT NOT NULL,
        body TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS llm_logs (
        id TEXT PRIMARY KEY,
        workspace_id TEXT,
        user_id TEXT,
        provider TEXT NOT NULL,
        input TEXT,
        output TEXT,
        status TEXT NOT NULL,
        error TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
)


def asset_kind(mime: str) -> str:
    major = (mime or "").split("/", 1)[0].lower()
    return major if major in {"image", "audio", "video"} else "file"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


class SQLiteWorldRepository:
    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.init_schema()

    def init_schema(self) -> None:
        cursor = self.conn.cursor()
        for statement in _SCHEMA:
            cursor.execute(statement)
        self.conn.commit()

    def _insert(self, table: str, values: dict[str, Any]) -> None:
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        try:
            self.conn.execute(f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", tuple(values.values()))
            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            raise

    def _fetch_one(self, query: str, params: tuple[Any, ...]) -> dict[str, Any] | None:
        row = self.conn.execute(query, params).fetchone()
        return dict(row) if row is not None else None

    # -- workspace membership -------------------------------------------------

    def add_member(self, workspace_id: str, user_id: str, role: str) -> None:
        try:
            self.conn.execute(
                """
                INSERT INTO workspace_members (workspace_id, user_id, role) VALUES (?, ?, ?)
                ON CONFLICT(workspace_id, user_id) DO UPDATE SET role = excluded.role
                """,
                (workspace_id, user_id, role),
            )
            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            raise

    def get_member_role(self, workspace_id: str, user_id: str) -> str | None:
        row = self._fetch_one(
            "SELECT role FROM workspace_members WHERE workspace_id = ? AND user_id = ?",
            (workspace_id, user_id),
        )
        return row["role"] if row else None

    def can_edit(self, workspace_id: str, user_id: str) -> bool:
        return self.get_member_role(workspace_id, user_id) in EDITOR_ROLES

    # -- entities / articles / revisions --------------------------------------

    def create_entity(self, draft: EntityDraft) -> str:
        entity_id = _new_id()
        self._insert(
            "entities",
            {
                "id": entity_id,
                "workspace_id": draft.workspace_id,
                "type": normalize_entity_type(draft.entity_type),
                "title": draft.title,
                "aliases": "[]",
                "tags": json.dumps(list(draft.tags), ensure_ascii=False),
                "status": "draft",
                "created_by": draft.user_id,
                "updated_by": draft.user_id,
                "created_at": _now(),
            },
        )
        return entity_id

    def create_article(self, workspace_id: str, entity_id: str) -> str:
        self._insert("articles", {"entity_id": entity_id, "workspace_id": workspace_id, "base_revision_id": None})
        return entity_id

    def create_revision(
        self,
        workspace_id: str,
        article_id: str,
        body_md: str,
        change_summary: str,
        user_id: str,
        approved: bool,
    ) -> str:
        revision_id = _new_id()
        self._insert(
            "article_revisions",
            {
                "id": revision_id,
                "workspace_id": workspace_id,
                "article_id": article_id,
                "target_type": "base",
                "body_md": body_md,
                "change_summary": change_summary,
                "status": "approved" if approved else "draft",
                "created_by": user_id,
                "approved_at": _now() if approved else None,
                "approved_by": user_id if approved else None,
                "created_at": _now(),
            },
        )
        return revision_id

    def set_base_revision(self, article_id: str, revision_id: str) -> None:
        try:
            self.conn.execute("UPDATE articles SET base_revision_id = ? WHERE entity_id = ?", (revision_id, article_id))
            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            raise

    def update_entity_media(
        self,
        entity_id: str,
        user_id: str,
        main_image_id: str | None,
        infobox_media: dict[str, Any] | None,
    ) -> None:
        try:
            self.conn.execute(
                "UPDATE entities SET main_image_id = ?, infobox_media = ?, updated_by = ? WHERE id = ?",
                (
                    main_image_id,
                    json.dumps(infobox_media, ensure_ascii=False) if infobox_media is not None else None,
                    user_id,
                    entity_id,
                ),
            )
            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            raise

    def get_entity(self, entity_id: str) -> dict[str, Any] | None:
        return self._fetch_one("SELECT * FROM entities WHERE id = ?", (entity_id,))

    def get_article(self, entity_id: str) -> dict[str, Any] | None:
        return self._fetch_one("SELECT * FROM articles WHERE entity_id = ?", (entity_id,))

    def get_revision(self, revision_id: str) -> dict[str, Any] | None:
        return self._fetch_one("SELECT * FROM article_revisions WHERE id = ?", (revision_id,))

    # -- assets / attribution --------------------------------------------------

    def create_asset(
        self,
        workspace_id: str,
        user_id: str,
        info: MediaInfo,
        storage_key: str,
        size: int,
    ) -> str:
        asset_id = _new_id()
        self._insert(
            "assets",
            {
                "id": asset_id,
                "workspace_id": workspace_id,
                "kind": asset_kind(info.mime),
                "storage_key": storage_key,
                "mime_type": info.mime,
                "size": size,
                "width": info.width,
                "height": info.height,
                "source_url": info.url,
                "author": info.author,
                "license_id": info.license_id,
                "license_url": info.license_url,
                "attribution_text": info.attribution_text,
                "created_by": user_id,
                "retrieved_at": _now(),
            },
        )
        return asset_id

    def get_asset(self, asset_id: str) -> dict[str, Any] | None:
        return self._fetch_one("SELECT * FROM assets WHERE id = ?", (asset_id,))

    def delete_asset(self, asset_id: str) -> None:
        try:
            self.conn.execute(
                "DELETE FROM source_records WHERE target_type = ? AND target_id = ?", ("asset", asset_id)
            )
            self.conn.execute("DELETE FROM assets WHERE id = ?", (asset_id,))
            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            raise

    def create_source_record(
        self,
        workspace_id: str,
        user_id: str,
        target_type: str,
        target_id: str,
        *,
        source_url: str,
        title: str,
        author: str | None = None,
        license_id: str | None = None,
        license_url: str | None = None,
        attribution_text: str | None = None,
        note: str | None = None,
    ) -> str:
        record_id = _new_id()
        self._insert(
            "source_records",
            {
                "id": record_id,
                "workspace_id": workspace_id,
                "target_type": target_type,
                "target_id": target_id,
                "source_url": source_url,
                "title": title,
                "author": author,
                "license_id": license_id,
                "license_url": license_url,
                "attribution_text": attribution_text,
                "note": note,
                "created_by": user_id,
                "retrieved_at": _now(),
            },
        )
        return record_id

    def list_source_records(self, workspace_id: str, target_type: str | None = None) -> list[dict[str, Any]]:
        if target_type is None:
            rows = self.conn.execute(
                "SELECT * FROM source_records WHERE workspace_id = ? ORDER BY rowid", (workspace_id,)
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM source_records WHERE workspace_id = ? AND target_type = ? ORDER BY rowid",
                (workspace_id, target_type),
            ).fetchall()
        return [dict(row) for row in rows]

    def append_audit(
        self,
        workspace_id: str,
        user_id: str,
        action: str,
        target_type: str,
        target_id: str,
        meta: dict[str, Any],
    ) -> str:
        audit_id = _new_id()
        self._insert(
            "audit_logs",
            {
                "id": audit_id,
                "workspace_id": workspace_id,
                "actor_user_id": user_id,
                "action": action,
                "target_type": target_type,
                "target_id": target_id,
                "meta": json.dumps(meta, ensure_ascii=False),
                "created_at": _now(),
            },
        )
        return audit_id

    def list_audit_logs(self, workspace_id: str) -> list[dict[str, Any]]:
        rows = self.conn.execute(
            "SELECT * FROM audit_logs WHERE workspace_id = ? ORDER BY rowid", (workspace_id,)
        ).fetchall()
        return [dict(row) for row in rows]

    # -- LLM templates and logs ------------------------------------------------

    def create_prompt_template(self, workspace_id: str, name: str, body: str) -> str:
        template_id = _new_id()
        self._insert("llm_templates", {"id": template_id, "workspace_id": workspace_id, "name": name, "body": body})
        return template_id

    def get_prompt_template(self, workspace_id: str, template_id: str) -> str | None:
        row = self._fetch_one(
            "SELECT body FROM llm_templates WHERE id = ? AND workspace_id = ?",
            (template_id, workspace_id),
        )
        return row["body"] if row else None

    def create_llm_log(self, workspace_id: str | None, user_id: str, provider: str, prompt: str) -> str:
        log_id = _new_id()
        self._insert(
            "llm_logs",
            {
                "id": log_id,
                "workspace_id": workspace_id,
                "user_id": user_id,
                "provider": provider,
                "input": prompt,
                "status": "running",
                "created_at": _now(),
            },
        )
        return log_id

    def finish_llm_log(self, log_id: str, output: str, status: str, error: str | None = None) -> None:
        try:
            self.conn.execute(
                "UPDATE llm_logs SET output = ?, status = ?, error = ? WHERE id = ?",
                (output, status, error, log_id),
            )
            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            raise

    def get_llm_log(self, log_id: str) -> dict[str, Any] | None:
        return self._fetch_one("SELECT * FROM llm_logs WHERE id = ?", (log_id,))

    def close(self) -> None:
        self.conn.close()
