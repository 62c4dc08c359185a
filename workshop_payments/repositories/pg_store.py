from __future__ import annotations

import logging
import math
from typing import Any, Optional
from uuid import uuid4

from psycopg2.extras import Json

from workshop_payments.db.client import get_conn
from workshop_payments.domain.errors import ConfigurationError
from workshop_payments.domain.models import PaymentRecord

from .base import PROVIDER_REFERENCE_KEYS, PaymentStore

logger = logging.getLogger(__name__)

# A reference field equal to $ref (stored as text) or $num (stored as a number)
_REFERENCE_FILTER = " || ".join(
    f"@.{key} == $ref || @.{key} == $num" for key in PROVIDER_REFERENCE_KEYS
)
REFERENCE_PATHS = (
    f"$.response.** ? ({_REFERENCE_FILTER})",
    f"$.verification.** ? ({_REFERENCE_FILTER})",
)


def _as_number(reference: str) -> int | float | str:
    try:
        return int(reference)
    except ValueError:
        pass
    try:
        number = float(reference)
    except ValueError:
        return reference
    return number if math.isfinite(number) else reference


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS payments (
    id          TEXT PRIMARY KEY,
    document    JSONB NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS payments_session_id_idx
    ON payments ((document->>'sessionId'));
CREATE INDEX IF NOT EXISTS payments_merchant_order_id_idx
    ON payments ((document->>'merchantOrderId'));

CREATE TABLE IF NOT EXISTS workshop_registrations (
    id          TEXT PRIMARY KEY,
    document    JSONB NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""


class PgPaymentStore(PaymentStore):
    """PostgreSQL-backed document store using JSONB rows and raw psycopg2.

    Each collection is a table of ``(id, document)``; timestamps inside the
    documents come from the database clock.
    """

    def __init__(self) -> None:
        self._schema_ready = False

    def _ensure_schema(self, conn) -> None:
        if self._schema_ready:
            return
        with conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
        self._schema_ready = True

    @staticmethod
    def _require(conn) -> None:
        if conn is None:
            raise ConfigurationError("database not configured (DB_HOST/DB_USER/DB_NAME)")

    def _fetch_one(self, query: str, params: tuple[Any, ...]) -> Optional[PaymentRecord]:
        with get_conn() as conn:
            self._require(conn)
            self._ensure_schema(conn)
            with conn.cursor() as cur:
                cur.execute(query, params)
                row = cur.fetchone()
        if not row:
            return None
        return PaymentRecord.from_document(str(row[0]), dict(row[1] or {}))

    def create_payment(self, record: PaymentRecord) -> PaymentRecord:
        record_id = uuid4().hex
        document = record.to_document()
        document.pop("createdAt", None)
        with get_conn() as conn:
            self._require(conn)
            self._ensure_schema(conn)
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO payments (id, document)
                    VALUES (%s, %s::jsonb || jsonb_build_object('createdAt', NOW()))
                    RETURNING id, document
                    """,
                    (record_id, Json(document)),
                )
                row = cur.fetchone()
        logger.info(
            "payment record inserted",
            extra={"record_id": record_id, "session_id": record.session_id, "status": record.status},
        )
        return PaymentRecord.from_document(str(row[0]), dict(row[1]))

    def get_payment_by_session_id(self, session_id: str) -> Optional[PaymentRecord]:
        if not session_id:
            return None
        return self._fetch_one(
            """
            SELECT id, document
              FROM payments
             WHERE document->>'sessionId' = %s
             ORDER BY created_at DESC
             LIMIT 1
            """,
            (session_id,),
        )

    def get_payment_by_merchant_order_id(self, merchant_order_id: str) -> Optional[PaymentRecord]:
        if not merchant_order_id:
            return None
        return self._fetch_one(
            """
            SELECT id, document
              FROM payments
             WHERE document->>'merchantOrderId' = %s
             ORDER BY created_at DESC
             LIMIT 1
            """,
            (merchant_order_id,),
        )

    def get_payment_by_provider_reference(self, reference: str) -> Optional[PaymentRecord]:
        if not reference:
            return None
        variables = Json({"ref": reference, "num": _as_number(reference)})
        return self._fetch_one(
            """
            SELECT id, document
              FROM payments
             WHERE jsonb_path_exists(document, %s::jsonpath, %s)
                OR jsonb_path_exists(document, %s::jsonpath, %s)
             ORDER BY created_at DESC
             LIMIT 1
            """,
            (REFERENCE_PATHS[0], variables, REFERENCE_PATHS[1], variables),
        )

    def update_payment(
        self,
        record: PaymentRecord,
        changes: dict[str, Any],
        *,
        stamp: str | None = None,
    ) -> PaymentRecord:
        if record.id is None:
            raise ValueError("record.id required")
        patch = {PaymentRecord.document_key(attribute): value for attribute, value in changes.items()}
        stamp_key = PaymentRecord.document_key(stamp) if stamp else None
        with get_conn() as conn:
            self._require(conn)
            self._ensure_schema(conn)
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE payments
                       SET document = document || %s::jsonb
                                      || CASE WHEN %s::text IS NULL THEN '{}'::jsonb
                                              ELSE jsonb_build_object(%s::text, NOW()) END,
                           updated_at = NOW()
                     WHERE id = %s
                     RETURNING id, document
                    """,
                    (Json(patch), stamp_key, stamp_key, record.id),
                )
                row = cur.fetchone()
        if not row:
            raise KeyError(f"unknown payment record {record.id}")
        return PaymentRecord.from_document(str(row[0]), dict(row[1]))

    def create_registration(self, document: dict[str, Any]) -> str:
        registration_id = uuid4().hex
        with get_conn() as conn:
            self._require(conn)
            self._ensure_schema(conn)
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO workshop_registrations (id, document)
                    VALUES (%s, %s::jsonb || jsonb_build_object('createdAt', NOW()))
                    """,
                    (registration_id, Json(document)),
                )
        return registration_id

    def update_registration(
        self,
        registration_id: str,
        changes: dict[str, Any],
        *,
        stamp: str | None = None,
    ) -> None:
        with get_conn() as conn:
            self._require(conn)
            self._ensure_schema(conn)
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE workshop_registrations
                       SET document = document || %s::jsonb
                                      || CASE WHEN %s::text IS NULL THEN '{}'::jsonb
                                              ELSE jsonb_build_object(%s::text, NOW()) END
                     WHERE id = %s
                    """,
                    (Json(changes), stamp, stamp, registration_id),
                )
                if cur.rowcount == 0:
                    raise KeyError(f"unknown registration {registration_id}")
