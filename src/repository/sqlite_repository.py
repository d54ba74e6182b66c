# src/repository/sqlite_repository.py
"""SQLite-based bundle repository (REPOSITORY_BACKEND=sqlite).

Uses stdlib sqlite3, no external dependency. The database runs in WAL mode
with foreign keys on. ``content_hash`` carries a UNIQUE constraint, the
backstop against two ingestions of the same bytes racing past the
pipeline's pre-check.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from reprostore.core.errors import ContentHashConflictError, DatabaseError
from reprostore.core.models import (
    Artifact,
    ArtifactType,
    Bundle,
    BundleListQuery,
    BundleListResult,
    QANote,
)
from reprostore.logging.logger import get_logger
from reprostore.repository.base_repository import BaseBundleRepository

_SCHEMA = """
CREATE TABLE IF NOT EXISTS bundles (
    bundle_id TEXT PRIMARY KEY,
    content_hash TEXT NOT NULL UNIQUE,
    schema_version TEXT NOT NULL,
    build_id TEXT NOT NULL,
    map_name TEXT,
    platform TEXT NOT NULL,
    harness_version TEXT,
    bundle_timestamp TEXT NOT NULL,
    metadata_json TEXT,
    size_bytes INTEGER NOT NULL DEFAULT 0,
    artifact_count INTEGER NOT NULL DEFAULT 0,
    storage_path TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_bundles_build_id ON bundles(build_id);
CREATE INDEX IF NOT EXISTS idx_bundles_map_name ON bundles(map_name);
CREATE INDEX IF NOT EXISTS idx_bundles_platform ON bundles(platform);
CREATE INDEX IF NOT EXISTS idx_bundles_created_at ON bundles(created_at);

CREATE TABLE IF NOT EXISTS artifacts (
    artifact_id TEXT PRIMARY KEY,
    bundle_id TEXT NOT NULL REFERENCES bundles(bundle_id) ON DELETE CASCADE,
    filename TEXT NOT NULL,
    artifact_type TEXT NOT NULL,
    mime_type TEXT,
    size_bytes INTEGER NOT NULL DEFAULT 0,
    storage_path TEXT NOT NULL,
    checksum TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_artifacts_bundle_id ON artifacts(bundle_id);

CREATE TABLE IF NOT EXISTS tags (
    bundle_id TEXT NOT NULL REFERENCES bundles(bundle_id) ON DELETE CASCADE,
    tag TEXT NOT NULL,
    PRIMARY KEY (bundle_id, tag)
);

CREATE TABLE IF NOT EXISTS qa_notes (
    note_id TEXT PRIMARY KEY,
    bundle_id TEXT NOT NULL REFERENCES bundles(bundle_id) ON DELETE CASCADE,
    author TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_qa_notes_bundle_id ON qa_notes(bundle_id);
"""

_BUNDLE_COLUMNS = (
    "bundle_id, content_hash, schema_version, build_id, map_name, platform, "
    "harness_version, bundle_timestamp, metadata_json, size_bytes, "
    "artifact_count, storage_path, created_at"
)
_ARTIFACT_COLUMNS = (
    "artifact_id, bundle_id, filename, artifact_type, mime_type, size_bytes, "
    "storage_path, checksum, created_at"
)


def _to_db_time(value: datetime) -> str:
    """Fixed-width UTC ISO-8601 so that string order equals time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SqliteBundleRepository(BaseBundleRepository):
    """SQLite-backed bundle repository."""

    def __init__(self, db_path: Path | str, logger: logging.Logger | None = None) -> None:
        self._logger = logger or get_logger("repository.sqlite_repository")
        self._db_path = Path(db_path).expanduser()
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._db_path))
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
            self._conn.executescript(_SCHEMA)
        except (OSError, sqlite3.Error) as exc:
            raise DatabaseError(
                f"open database {self._db_path}: {exc}", details={"path": str(self._db_path)}
            ) from exc
        self._logger.debug("Opened sqlite repository at %s", self._db_path)

    # --- Bundles ---

    async def insert_bundle_if_absent(self, bundle: Bundle) -> tuple[str, bool]:
        """Check-and-insert inside one transaction."""
        try:
            with self._conn:
                self._conn.execute("BEGIN IMMEDIATE")
                row = self._conn.execute(
                    "SELECT bundle_id FROM bundles WHERE content_hash = ?",
                    (bundle.content_hash,),
                ).fetchone()
                if row is not None:
                    return row["bundle_id"], True
                self._conn.execute(
                    f"INSERT INTO bundles ({_BUNDLE_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        bundle.bundle_id,
                        bundle.content_hash,
                        bundle.schema_version,
                        bundle.build_id,
                        bundle.map_name,
                        bundle.platform,
                        bundle.harness_version,
                        _to_db_time(bundle.bundle_timestamp),
                        json.dumps(bundle.metadata) if bundle.metadata is not None else None,
                        bundle.size_bytes,
                        bundle.artifact_count,
                        bundle.storage_path,
                        _to_db_time(bundle.created_at),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            if "content_hash" in str(exc):
                raise ContentHashConflictError(bundle.content_hash) from exc
            raise DatabaseError(
                f"insert bundle: {exc}", details={"bundle_id": bundle.bundle_id}
            ) from exc
        except sqlite3.Error as exc:
            raise DatabaseError(
                f"insert bundle: {exc}", details={"bundle_id": bundle.bundle_id}
            ) from exc
        return bundle.bundle_id, False

    async def get_bundle(self, bundle_id: str) -> Bundle | None:
        row = self._fetchone(
            f"SELECT {_BUNDLE_COLUMNS} FROM bundles WHERE bundle_id = ?", (bundle_id,)
        )
        if row is None:
            return None
        bundle = self._row_to_bundle(row)
        bundle.artifacts = await self.get_artifacts(bundle_id)
        bundle.tags = await self.get_tags(bundle_id)
        bundle.notes = await self.get_notes(bundle_id)
        return bundle

    async def get_bundle_by_hash(self, content_hash: str) -> Bundle | None:
        row = self._fetchone(
            f"SELECT {_BUNDLE_COLUMNS} FROM bundles WHERE content_hash = ?", (content_hash,)
        )
        return self._row_to_bundle(row) if row is not None else None

    async def list_bundles(self, query: BundleListQuery) -> BundleListResult:
        conditions: list[str] = []
        args: list[Any] = []
        if query.build_id:
            conditions.append("build_id = ?")
            args.append(query.build_id)
        if query.map_name:
            conditions.append("map_name = ?")
            args.append(query.map_name)
        if query.platform:
            conditions.append("platform = ?")
            args.append(query.platform)
        if query.since is not None:
            conditions.append("created_at >= ?")
            args.append(_to_db_time(query.since))
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        limit, offset = query.effective_limit, query.effective_offset
        total_row = self._fetchone(f"SELECT COUNT(*) AS n FROM bundles {where}", tuple(args))
        rows = self._fetchall(
            f"SELECT {_BUNDLE_COLUMNS} FROM bundles {where} "
            "ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            (*args, limit, offset),
        )
        return BundleListResult(
            bundles=[self._row_to_bundle(r) for r in rows],
            total=total_row["n"] if total_row is not None else 0,
            limit=limit,
            offset=offset,
        )

    # --- Artifacts ---

    async def insert_artifact(self, artifact: Artifact) -> None:
        self._execute(
            f"INSERT INTO artifacts ({_ARTIFACT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                artifact.artifact_id,
                artifact.bundle_id,
                artifact.filename,
                artifact.artifact_type.value,
                artifact.mime_type,
                artifact.size_bytes,
                artifact.storage_path,
                artifact.checksum,
                _to_db_time(artifact.created_at),
            ),
            what="insert artifact",
        )

    async def get_artifact(self, artifact_id: str) -> Artifact | None:
        row = self._fetchone(
            f"SELECT {_ARTIFACT_COLUMNS} FROM artifacts WHERE artifact_id = ?", (artifact_id,)
        )
        return self._row_to_artifact(row) if row is not None else None

    async def get_artifacts(self, bundle_id: str) -> list[Artifact]:
        rows = self._fetchall(
            f"SELECT {_ARTIFACT_COLUMNS} FROM artifacts WHERE bundle_id = ? ORDER BY filename",
            (bundle_id,),
        )
        return [self._row_to_artifact(r) for r in rows]

    # --- Tags & notes ---

    async def add_tag(self, bundle_id: str, tag: str) -> None:
        self._execute(
            "INSERT OR IGNORE INTO tags (bundle_id, tag) VALUES (?, ?)",
            (bundle_id, tag),
            what="add tag",
        )

    async def get_tags(self, bundle_id: str) -> list[str]:
        rows = self._fetchall(
            "SELECT tag FROM tags WHERE bundle_id = ? ORDER BY tag", (bundle_id,)
        )
        return [r["tag"] for r in rows]

    async def add_note(self, note: QANote) -> None:
        self._execute(
            "INSERT INTO qa_notes (note_id, bundle_id, author, content, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (note.note_id, note.bundle_id, note.author, note.content, _to_db_time(note.created_at)),
            what="add note",
        )

    async def get_notes(self, bundle_id: str) -> list[QANote]:
        rows = self._fetchall(
            "SELECT note_id, bundle_id, author, content, created_at FROM qa_notes "
            "WHERE bundle_id = ? ORDER BY created_at, rowid",
            (bundle_id,),
        )
        return [
            QANote(
                note_id=r["note_id"],
                bundle_id=r["bundle_id"],
                author=r["author"],
                content=r["content"],
                created_at=_from_db_time(r["created_at"]),
            )
            for r in rows
        ]

    # --- Lifecycle ---

    async def check_health(self) -> None:
        self._fetchone("SELECT 1 AS ok", ())

    async def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # --- Internals ---

    def _execute(self, sql: str, params: tuple[Any, ...], what: str) -> None:
        try:
            with self._conn:
                self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise DatabaseError(f"{what}: {exc}") from exc

    def _fetchone(self, sql: str, params: tuple[Any, ...]) -> sqlite3.Row | None:
        try:
            return self._conn.execute(sql, params).fetchone()
        except sqlite3.Error as exc:
            raise DatabaseError(f"query failed: {exc}") from exc

    def _fetchall(self, sql: str, params: tuple[Any, ...]) -> list[sqlite3.Row]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise DatabaseError(f"query failed: {exc}") from exc

    def _row_to_bundle(self, row: sqlite3.Row) -> Bundle:
        metadata = None
        if row["metadata_json"]:
            try:
                metadata = json.loads(row["metadata_json"])
            except json.JSONDecodeError as exc:
                self._logger.warning(
                    "Failed to decode metadata of bundle %s: %s", row["bundle_id"], exc
                )
        return Bundle(
            bundle_id=row["bundle_id"],
            content_hash=row["content_hash"],
            schema_version=row["schema_version"],
            build_id=row["build_id"],
            map_name=row["map_name"],
            platform=row["platform"],
            harness_version=row["harness_version"],
            bundle_timestamp=_from_db_time(row["bundle_timestamp"]),
            metadata=metadata,
            size_bytes=row["size_bytes"],
            artifact_count=row["artifact_count"],
            storage_path=row["storage_path"],
            created_at=_from_db_time(row["created_at"]),
        )

    @staticmethod
    def _row_to_artifact(row: sqlite3.Row) -> Artifact:
        return Artifact(
            artifact_id=row["artifact_id"],
            bundle_id=row["bundle_id"],
            filename=row["filename"],
            artifact_type=ArtifactType(row["artifact_type"]),
            mime_type=row["mime_type"] or "",
            size_bytes=row["size_bytes"],
            storage_path=row["storage_path"],
            checksum=row["checksum"],
            created_at=_from_db_time(row["created_at"]),
        )
