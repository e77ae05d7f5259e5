"""
Tests for FirestoreCommitStore against a fake client.
"""

import asyncio

import pytest

from playback.core.errors import RecordNotFound, StoreUnavailable
from playback.store.base import Projection
from playback.store.firestore_store import FirestoreCommitStore


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data
        self.exists = data is not None

    def to_dict(self):
        return self._data


class FakeQuery:
    def __init__(self, docs, fail=False):
        self.docs = docs
        self.fail = fail
        self.calls = []

    def order_by(self, field, direction="ASCENDING"):
        self.calls.append(("order_by", field, direction))
        self.docs = sorted(self.docs, key=lambda d: d[1][field], reverse=direction == "DESCENDING")
        return self

    def where(self, field, op, value):
        self.calls.append(("where", field, op, value))
        assert op == ">="
        self.docs = [d for d in self.docs if d[1][field] >= value]
        return self

    def limit(self, n):
        self.calls.append(("limit", n))
        self.docs = self.docs[:n]
        return self

    def stream(self):
        if self.fail:
            raise RuntimeError("deadline exceeded")
        return [FakeSnapshot(doc_id, data) for doc_id, data in self.docs]

    def document(self, doc_id):
        data = dict(self.docs).get(doc_id)

        class _Ref:
            def get(_self):
                return FakeSnapshot(doc_id, data)

        return _Ref()


class FakeClient:
    def __init__(self, collections, fail=False):
        self.collections = collections
        self.fail = fail
        self.requested = []

    def collection(self, name):
        self.requested.append(name)
        return FakeQuery(list(self.collections.get(name, {}).items()), fail=self.fail)


def _client(**kwargs):
    return FakeClient(
        {
            "repo": {
                "c1": {"date": 100, "nodes": '[[{"path": "a"}]]', "edges": "[]", "count": 1},
                "c2": {"date": 200, "nodes": '[[{"path": "a"}, {"path": "b"}]]', "edges": "[]", "count": 2},
                "c3": {"date": 300, "nodes": "[[]]", "edges": "[]", "count": 0},
            },
            "repo_changes": {
                "c2": {"date": 200, "changes": {"added": {"b": {"path": "b"}}}, "edges": []},
            },
        },
        **kwargs,
    )


def test_range_query_uses_document_ids_as_hashes():
    store = FirestoreCommitStore("repo", client=_client())
    records = asyncio.run(store.query_range(150, 1))

    assert [r.sha for r in records] == ["c2"]
    assert [n["path"] for n in records[0].payload().nodes_full] == ["a", "b"]


def test_changes_projection_reads_changes_collection():
    client = _client()
    store = FirestoreCommitStore("repo", client=client)

    records = asyncio.run(store.query_range(0, 10, Projection.CHANGES))

    assert client.requested == ["repo_changes"]
    assert records[0].payload().changes.added == {"b": {"path": "b"}}


def test_latest_and_lookup():
    store = FirestoreCommitStore("repo", client=_client())

    assert asyncio.run(store.query_latest()).sha == "c3"
    assert asyncio.run(store.get_by_hash("c1")).date == 100
    with pytest.raises(RecordNotFound):
        asyncio.run(store.get_by_hash("nope"))


def test_transport_failure_is_store_unavailable():
    store = FirestoreCommitStore("repo", client=_client(fail=True))
    with pytest.raises(StoreUnavailable):
        asyncio.run(store.query_range(0, 10))


class CannedQuery:
    """Query that ignores its constraints and streams fixed snapshots."""

    def __init__(self, snapshots):
        self.snapshots = snapshots

    def order_by(self, field, direction="ASCENDING"):
        return self

    def where(self, field, op, value):
        return self

    def limit(self, n):
        return self

    def stream(self):
        return list(self.snapshots)


class CannedClient:
    def __init__(self, snapshots):
        self.snapshots = snapshots

    def collection(self, name):
        return CannedQuery(self.snapshots)


def test_documents_without_usable_date_are_skipped():
    client = CannedClient(
        [
            FakeSnapshot("c1", {"date": 100, "edges": "[]"}),
            FakeSnapshot("bad", {"date": "soon", "edges": "[]"}),
            FakeSnapshot("nodate", {"edges": "[]"}),
            FakeSnapshot("c3", {"date": 300, "edges": "[]"}),
        ]
    )
    store = FirestoreCommitStore("repo", client=client)

    records = asyncio.run(store.query_range(0, 10))

    assert [r.sha for r in records] == ["c1", "c3"]
