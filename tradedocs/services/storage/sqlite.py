"""
SQLite-based storage for single-instance deployments.

Provides persistent storage of documents, extraction records, review flags
and manual corrections. One connection per call; SQLite's own locking makes
each call atomic.
"""

import json
import sqlite3
import uuid
from datetime import datetime, UTC
from typing import Any, Iterable, Optional

from loguru import logger

from ...core.errors import NotFoundError
from ...models.document import (
    Document,
    DocumentCategory,
    DocumentCreate,
    DocumentStatus,
    ExtractionRecord,
    ManualCorrection,
    ManualCorrectionCreate,
    ReviewFlag,
    ReviewFlagCreate,
)
from .base import DuplicateExtractionError, StorageBase, check_document_changes

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    customer_id INTEGER NOT NULL,
    filename TEXT NOT NULL,
    original_name TEXT NOT NULL,
    file_url TEXT,
    status TEXT NOT NULL DEFAULT 'uploaded',
    classification TEXT,
    classification_confidence REAL,
    processing_error TEXT,
    uploaded_at TEXT NOT NULL,
    processed_at TEXT,
    CHECK (status IN ('uploaded', 'processing', 'classified', 'extracted', 'flagged', 'completed'))
);
CREATE INDEX IF NOT EXISTS idx_documents_customer ON documents(customer_id);
CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status);

CREATE TABLE IF NOT EXISTS extraction_records (
    id TEXT PRIMARY KEY,
    document_id TEXT NOT NULL UNIQUE REFERENCES documents(id),
    customer_id INTEGER NOT NULL,
    category TEXT NOT NULL,
    data TEXT NOT NULL,
    confidence REAL NOT NULL,
    extracted_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_extractions_customer ON extraction_records(customer_id, category);

CREATE TABLE IF NOT EXISTS review_flags (
    id TEXT PRIMARY KEY,
    document_id TEXT NOT NULL REFERENCES documents(id),
    customer_id INTEGER NOT NULL,
    issue_type TEXT NOT NULL,
    field_name TEXT,
    current_value TEXT,
    corrected_value TEXT,
    is_resolved INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    resolved_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_flags_customer ON review_flags(customer_id, is_resolved);
CREATE INDEX IF NOT EXISTS idx_flags_document ON review_flags(document_id);

CREATE TABLE IF NOT EXISTS manual_corrections (
    id TEXT PRIMARY KEY,
    document_id TEXT NOT NULL REFERENCES documents(id),
    customer_id INTEGER NOT NULL,
    field_name TEXT NOT NULL,
    original_value TEXT,
    corrected_value TEXT NOT NULL,
    corrected_by TEXT NOT NULL,
    corrected_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_corrections_document ON manual_corrections(document_id);
"""


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _db_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value"):  # str Enums
        return value.value
    return value


class SQLiteStorage(StorageBase):
    """
    SQLite-backed storage with persistent rows.

    Features:
    - Persistent storage across application restarts
    - One extraction record per document (UNIQUE constraint)
    - Append-only manual corrections
    """

    def __init__(self, db_path: str = "tradedocs.db"):
        """
        Initialize storage with database path.

        Args:
            db_path: Path to SQLite database file (default: tradedocs.db)
        """
        self.db_path = db_path
        self._init_database()

    def _init_database(self):
        """Create tables if they don't exist"""
        conn = sqlite3.connect(self.db_path)
        try:
            conn.executescript(SCHEMA)
            conn.commit()
        finally:
            conn.close()
        logger.debug("SQLite storage ready", db_path=self.db_path)

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory"""
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    def _fetch_all(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        conn = self._get_connection()
        try:
            return conn.execute(query, params).fetchall()
        finally:
            conn.close()

    def _fetch_one(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        conn = self._get_connection()
        try:
            return conn.execute(query, params).fetchone()
        finally:
            conn.close()

    def _execute(self, query: str, params: tuple = ()) -> int:
        conn = self._get_connection()
        try:
            cursor = conn.execute(query, params)
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    # ----- row mapping -----

    @staticmethod
    def _document_from_row(row: sqlite3.Row) -> Document:
        return Document(
            id=row["id"],
            customer_id=row["customer_id"],
            filename=row["filename"],
            original_name=row["original_name"],
            file_url=row["file_url"],
            status=row["status"],
            classification=row["classification"],
            classification_confidence=row["classification_confidence"],
            processing_error=row["processing_error"],
            uploaded_at=row["uploaded_at"],
            processed_at=row["processed_at"],
        )

    @staticmethod
    def _extraction_from_row(row: sqlite3.Row) -> ExtractionRecord:
        return ExtractionRecord(
            id=row["id"],
            document_id=row["document_id"],
            customer_id=row["customer_id"],
            category=row["category"],
            data=json.loads(row["data"]),
            confidence=row["confidence"],
            extracted_at=row["extracted_at"],
        )

    @staticmethod
    def _flag_from_row(row: sqlite3.Row) -> ReviewFlag:
        return ReviewFlag(
            id=row["id"],
            document_id=row["document_id"],
            customer_id=row["customer_id"],
            issue_type=row["issue_type"],
            field_name=row["field_name"],
            current_value=row["current_value"],
            corrected_value=row["corrected_value"],
            is_resolved=bool(row["is_resolved"]),
            created_at=row["created_at"],
            resolved_at=row["resolved_at"],
        )

    @staticmethod
    def _correction_from_row(row: sqlite3.Row) -> ManualCorrection:
        return ManualCorrection(**dict(row))

    # ----- documents -----

    def create_document(self, document: DocumentCreate) -> Document:
        document_id = str(uuid.uuid4())
        uploaded_at = datetime.now(UTC).isoformat()

        self._execute("""
            INSERT INTO documents (id, customer_id, filename, original_name, file_url, status, uploaded_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            document_id,
            document.customer_id,
            document.filename,
            document.original_name,
            document.file_url,
            document.status.value,
            uploaded_at,
        ))
        return self.get_document(document_id)

    def get_document(self, document_id: str) -> Optional[Document]:
        row = self._fetch_one("SELECT * FROM documents WHERE id = ?", (document_id,))
        return self._document_from_row(row) if row else None

    def update_document(self, document_id: str, **changes: Any) -> Document:
        check_document_changes(changes)
        if changes:
            # Column names come from UPDATABLE_DOCUMENT_FIELDS only
            assignments = ", ".join(f"{key} = ?" for key in changes)
            params = tuple(_db_value(v) for v in changes.values()) + (document_id,)
            updated = self._execute(f"UPDATE documents SET {assignments} WHERE id = ?", params)
            if updated == 0:
                raise NotFoundError(f"Document {document_id} not found")

        document = self.get_document(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        return document

    def list_documents(self, customer_id: int) -> list[Document]:
        rows = self._fetch_all("""
            SELECT * FROM documents
            WHERE customer_id = ?
            ORDER BY uploaded_at DESC, rowid DESC
        """, (customer_id,))
        return [self._document_from_row(r) for r in rows]

    def list_documents_by_status(self, statuses: Iterable[DocumentStatus]) -> list[Document]:
        values = [DocumentStatus(s).value for s in statuses]
        if not values:
            return []
        placeholders = ", ".join("?" for _ in values)
        rows = self._fetch_all(
            f"SELECT * FROM documents WHERE status IN ({placeholders}) ORDER BY uploaded_at, rowid",
            tuple(values),
        )
        return [self._document_from_row(r) for r in rows]

    # ----- extraction records -----

    def create_extraction_record(
        self,
        document_id: str,
        customer_id: int,
        category: DocumentCategory,
        data: dict[str, Any],
        confidence: float,
    ) -> ExtractionRecord:
        record_id = str(uuid.uuid4())
        try:
            self._execute("""
                INSERT INTO extraction_records (id, document_id, customer_id, category, data, confidence, extracted_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                record_id,
                document_id,
                customer_id,
                DocumentCategory(category).value,
                json.dumps(data),
                confidence,
                datetime.now(UTC).isoformat(),
            ))
        except sqlite3.IntegrityError as e:
            raise DuplicateExtractionError(
                f"Document {document_id} already has an extraction record"
            ) from e
        return self.get_extraction_record(document_id)

    def get_extraction_record(self, document_id: str) -> Optional[ExtractionRecord]:
        row = self._fetch_one("SELECT * FROM extraction_records WHERE document_id = ?", (document_id,))
        return self._extraction_from_row(row) if row else None

    def list_extraction_records(
        self, customer_id: int, category: Optional[DocumentCategory] = None
    ) -> list[ExtractionRecord]:
        query = "SELECT * FROM extraction_records WHERE customer_id = ?"
        params: tuple = (customer_id,)
        if category is not None:
            query += " AND category = ?"
            params += (DocumentCategory(category).value,)
        query += " ORDER BY extracted_at DESC, rowid DESC"
        return [self._extraction_from_row(r) for r in self._fetch_all(query, params)]

    # ----- review flags -----

    def create_review_flag(self, flag: ReviewFlagCreate) -> ReviewFlag:
        flag_id = str(uuid.uuid4())
        self._execute("""
            INSERT INTO review_flags (id, document_id, customer_id, issue_type, field_name, current_value, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            flag_id,
            flag.document_id,
            flag.customer_id,
            flag.issue_type.value,
            flag.field_name,
            flag.current_value,
            datetime.now(UTC).isoformat(),
        ))
        return self.get_review_flag(flag_id)

    def get_review_flag(self, flag_id: str) -> Optional[ReviewFlag]:
        row = self._fetch_one("SELECT * FROM review_flags WHERE id = ?", (flag_id,))
        return self._flag_from_row(row) if row else None

    def list_review_flags(self, customer_id: int, unresolved_only: bool = True) -> list[ReviewFlag]:
        query = "SELECT * FROM review_flags WHERE customer_id = ?"
        if unresolved_only:
            query += " AND is_resolved = 0"
        query += " ORDER BY created_at DESC, rowid DESC"
        return [self._flag_from_row(r) for r in self._fetch_all(query, (customer_id,))]

    def list_flags_for_document(self, document_id: str) -> list[ReviewFlag]:
        rows = self._fetch_all(
            "SELECT * FROM review_flags WHERE document_id = ? ORDER BY created_at, rowid",
            (document_id,),
        )
        return [self._flag_from_row(r) for r in rows]

    def resolve_review_flag(self, flag_id: str, corrected_value: Optional[str] = None) -> ReviewFlag:
        updated = self._execute("""
            UPDATE review_flags
            SET is_resolved = 1,
                corrected_value = COALESCE(?, corrected_value),
                resolved_at = ?
            WHERE id = ?
        """, (corrected_value, datetime.now(UTC).isoformat(), flag_id))
        if updated == 0:
            raise NotFoundError(f"Review flag {flag_id} not found")
        return self.get_review_flag(flag_id)

    # ----- manual corrections -----

    def create_manual_correction(self, correction: ManualCorrectionCreate) -> ManualCorrection:
        correction_id = str(uuid.uuid4())
        corrected_at = datetime.now(UTC)
        self._execute("""
            INSERT INTO manual_corrections
                (id, document_id, customer_id, field_name, original_value, corrected_value, corrected_by, corrected_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            correction_id,
            correction.document_id,
            correction.customer_id,
            correction.field_name,
            correction.original_value,
            correction.corrected_value,
            correction.corrected_by,
            _ts(corrected_at),
        ))
        return ManualCorrection(id=correction_id, corrected_at=corrected_at, **correction.model_dump())

    def list_manual_corrections(self, document_id: str) -> list[ManualCorrection]:
        rows = self._fetch_all(
            "SELECT * FROM manual_corrections WHERE document_id = ? ORDER BY corrected_at, rowid",
            (document_id,),
        )
        return [self._correction_from_row(r) for r in rows]
