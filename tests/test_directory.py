"""Tests for phone -> source mapping resolution."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest

from autoreply.errors import InvariantViolation, MappingLookupError
from autoreply.retrieval.directory import DataSource, SourceDirectory
from tests.fakes import SleepRecorder


def _query(data: list[dict[str, Any]] | None = None, errors: list[Exception] | None = None) -> MagicMock:
    query = MagicMock()
    for method in ("select", "insert", "delete", "eq"):
        getattr(query, method).return_value = query
    result = MagicMock()
    result.data = data or []
    query.execute.side_effect = [*(errors or []), *([result] * 5)]
    return query


def _client(documents: MagicMock, calls: MagicMock) -> MagicMock:
    tables = {"phone_document_mapping": documents, "phone_call_mapping": calls}
    client = MagicMock()
    client.table.side_effect = lambda name: tables[name]
    return client


FILE_ROWS = [
    {
        "phone_number": "+15550001",
        "document_id": "doc-1",
        "data_source": "file",
        "system_prompt": "You are the Acme helper.",
        "auth_token": "tok",
        "origin": "acme.example",
    },
    {"phone_number": "+15550001", "document_id": "doc-2", "data_source": "file"},
]


class TestResolve:
    def test_file_mapping_with_calls(self, sleeps: SleepRecorder) -> None:
        directory = SourceDirectory(
            _client(_query(FILE_ROWS), _query([{"call_id": "call-9"}])), sleep=sleeps
        )

        mapping = directory.resolve("+15550001")

        assert mapping is not None
        assert mapping.data_source is DataSource.FILE
        assert mapping.document_ids == ["doc-1", "doc-2"]
        assert mapping.call_ids == ["call-9"]
        assert mapping.system_prompt == "You are the Acme helper."
        assert mapping.credentials.complete
        assert not mapping.is_empty
        assert sleeps.calls == []

    def test_shopify_mapping(self, sleeps: SleepRecorder) -> None:
        rows = [
            {
                "phone_number": "+15550002",
                "store_id": "store-1",
                "data_source": "shopify",
                "auth_token": "tok",
                "origin": "shop.example",
            }
        ]
        directory = SourceDirectory(_client(_query(rows), _query()), sleep=sleeps)

        mapping = directory.resolve("+15550002")

        assert mapping is not None
        assert mapping.data_source is DataSource.SHOPIFY
        assert mapping.catalog_store_id == "store-1"
        assert mapping.document_ids == []

    def test_missing_data_source_defaults_to_file(self, sleeps: SleepRecorder) -> None:
        rows = [{"phone_number": "+1", "document_id": "doc-1", "data_source": None}]
        directory = SourceDirectory(_client(_query(rows), _query()), sleep=sleeps)

        mapping = directory.resolve("+1")

        assert mapping is not None and mapping.data_source is DataSource.FILE

    def test_unmapped_number_is_none(self, sleeps: SleepRecorder) -> None:
        directory = SourceDirectory(_client(_query(), _query()), sleep=sleeps)
        assert directory.resolve("+19999999") is None

    def test_mixed_data_sources_rejected(self, sleeps: SleepRecorder) -> None:
        rows = [
            {"phone_number": "+1", "document_id": "doc-1", "data_source": "file"},
            {"phone_number": "+1", "store_id": "store-1", "data_source": "shopify"},
        ]
        directory = SourceDirectory(_client(_query(rows), _query()), sleep=sleeps)

        with pytest.raises(InvariantViolation):
            directory.resolve("+1")

    def test_transient_failure_recovers(self, sleeps: SleepRecorder) -> None:
        documents = _query(FILE_ROWS, errors=[ConnectionError("reset by peer")])
        directory = SourceDirectory(_client(documents, _query()), sleep=sleeps)

        mapping = directory.resolve("+15550001")

        assert mapping is not None
        assert sleeps.calls == [1]

    def test_gives_up_after_three_attempts(self, sleeps: SleepRecorder) -> None:
        documents = _query(errors=[ConnectionError("down")] * 3)
        directory = SourceDirectory(_client(documents, _query()), sleep=sleeps)

        with pytest.raises(MappingLookupError) as exc_info:
            directory.resolve("+15550001")

        assert documents.execute.call_count == 3
        assert sleeps.calls == [1, 2]
        assert isinstance(exc_info.value.__cause__, ConnectionError)


class TestDataSourceFor:
    def test_reads_only_document_mapping(self, sleeps: SleepRecorder) -> None:
        calls = _query([{"call_id": "call-9"}])
        directory = SourceDirectory(_client(_query(), calls), sleep=sleeps)

        assert directory.data_source_for("+15550001") is None
        assert not directory.has_mapping("+15550001")
        calls.execute.assert_not_called()

    def test_returns_mapped_source(self, sleeps: SleepRecorder) -> None:
        directory = SourceDirectory(
            _client(_query([{"data_source": "shopify"}]), _query()), sleep=sleeps
        )
        assert directory.data_source_for("+1") is DataSource.SHOPIFY


class TestMapDocument:
    def test_reuses_prompt_and_credentials(self, sleeps: SleepRecorder) -> None:
        documents = _query(FILE_ROWS)
        directory = SourceDirectory(_client(documents, _query()), sleep=sleeps)

        directory.map_document("+15550001", "doc-3")

        row = documents.insert.call_args.args[0]
        assert row["document_id"] == "doc-3"
        assert row["data_source"] == "file"
        assert row["system_prompt"] == "You are the Acme helper."
        assert (row["auth_token"], row["origin"]) == ("tok", "acme.example")

    def test_catalog_number_rejected(self, sleeps: SleepRecorder) -> None:
        documents = _query([{"store_id": "store-1", "data_source": "shopify"}])
        directory = SourceDirectory(_client(documents, _query()), sleep=sleeps)

        with pytest.raises(InvariantViolation):
            directory.map_document("+1", "doc-3")
        documents.insert.assert_not_called()


class TestDelete:
    def test_reports_whether_anything_was_removed(self, sleeps: SleepRecorder) -> None:
        removed = SourceDirectory(_client(_query([{"id": 1}]), _query()), sleep=sleeps)
        nothing = SourceDirectory(_client(_query(), _query()), sleep=sleeps)

        assert removed.delete("+1")
        assert not nothing.delete("+1")
