"""Phone number -> content scope lookup with bounded retries."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, TypeVar

from supabase import Client
from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    stop_after_attempt,
    wait_incrementing,
)

from autoreply.errors import InvariantViolation, MappingLookupError
from autoreply.ingestion.storage import result_rows

logger = logging.getLogger(__name__)

T = TypeVar("T")

DOCUMENT_MAPPING = "phone_document_mapping"
CALL_MAPPING = "phone_call_mapping"


class DataSource(StrEnum):
    FILE = "file"
    SHOPIFY = "shopify"


@dataclass(frozen=True)
class Credentials:
    auth_token: str | None = None
    origin: str | None = None

    @property
    def complete(self) -> bool:
        return bool(self.auth_token and self.origin)


@dataclass
class SourceMapping:
    """Everything one business number can answer from, plus its reply config."""

    phone_key: str
    data_source: DataSource
    document_ids: list[str] = field(default_factory=list)
    call_ids: list[str] = field(default_factory=list)
    catalog_store_id: str | None = None
    system_prompt: str | None = None
    credentials: Credentials = field(default_factory=Credentials)

    @property
    def is_empty(self) -> bool:
        if self.data_source is DataSource.SHOPIFY:
            return not self.catalog_store_id
        return not self.document_ids and not self.call_ids


def _first(rows: list[dict[str, Any]], column: str) -> Any:
    return next((r[column] for r in rows if r.get(column)), None)


class SourceDirectory:
    """Reads ``phone_document_mapping`` and ``phone_call_mapping``.

    Every remote read gets ``max_attempts`` tries with a linearly growing
    pause (1 s, 2 s, ...). Missing rows are not an error.
    """

    def __init__(
        self,
        client: Client,
        max_attempts: int = 3,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self.max_attempts = max_attempts
        self._sleep = sleep

    def _read(self, what: str, query: Callable[[], T]) -> T:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=1, increment=1),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        try:
            return retrying(query)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            raise MappingLookupError(
                f"Could not read {what} after {self.max_attempts} attempts: {last}"
            ) from last

    def _document_rows(self, phone: str) -> list[dict[str, Any]]:
        return self._read(
            f"document mapping for {phone}",
            lambda: result_rows(self._client.table(DOCUMENT_MAPPING).select("*").eq("phone_number", phone).execute()),
        )

    def _call_ids(self, phone: str) -> list[str]:
        rows = self._read(
            f"call mapping for {phone}",
            lambda: result_rows(
                self._client.table(CALL_MAPPING).select("call_id").eq("phone_number", phone).execute()
            ),
        )
        return [str(r["call_id"]) for r in rows if r.get("call_id")]

    @staticmethod
    def _data_source(phone: str, rows: list[dict[str, Any]]) -> DataSource:
        sources = {DataSource(r.get("data_source") or DataSource.FILE) for r in rows}
        if len(sources) > 1:
            raise InvariantViolation(
                f"Phone {phone} is mapped to several data sources: {sorted(sources)}"
            )
        return sources.pop() if sources else DataSource.FILE

    def resolve(self, phone: str) -> SourceMapping | None:
        """Assemble the full mapping for *phone*, or None when nothing is mapped."""
        rows = self._document_rows(phone)
        call_ids = self._call_ids(phone)
        if not rows and not call_ids:
            return None

        return SourceMapping(
            phone_key=phone,
            data_source=self._data_source(phone, rows),
            document_ids=[str(r["document_id"]) for r in rows if r.get("document_id")],
            call_ids=call_ids,
            catalog_store_id=_first(rows, "store_id"),
            system_prompt=_first(rows, "system_prompt"),
            credentials=Credentials(
                auth_token=_first(rows, "auth_token"),
                origin=_first(rows, "origin"),
            ),
        )

    def data_source_for(self, phone: str) -> DataSource | None:
        rows = self._read(
            f"data source for {phone}",
            lambda: result_rows(
                self._client.table(DOCUMENT_MAPPING).select("data_source").eq("phone_number", phone).execute()
            ),
        )
        if not rows:
            return None
        return self._data_source(phone, rows)

    def has_mapping(self, phone: str) -> bool:
        return self.data_source_for(phone) is not None

    def map_document(self, phone: str, document_id: str) -> None:
        """Add a document to a number's file mapping, reusing its prompt and credentials."""
        rows = self._document_rows(phone)
        if self._data_source(phone, rows) is not DataSource.FILE:
            raise InvariantViolation(f"Phone {phone} is mapped to a catalog, not documents")
        self._client.table(DOCUMENT_MAPPING).insert(
            {
                "phone_number": phone,
                "document_id": document_id,
                "data_source": DataSource.FILE.value,
                "system_prompt": _first(rows, "system_prompt"),
                "auth_token": _first(rows, "auth_token"),
                "origin": _first(rows, "origin"),
            }
        ).execute()

    def delete(self, phone: str) -> bool:
        """Remove every mapping row for *phone*; True if anything was deleted."""
        docs = result_rows(self._client.table(DOCUMENT_MAPPING).delete().eq("phone_number", phone).execute())
        calls = result_rows(self._client.table(CALL_MAPPING).delete().eq("phone_number", phone).execute())
        logger.info("Deleted mappings for %s (%d document, %d call)", phone, len(docs), len(calls))
        return bool(docs or calls)
