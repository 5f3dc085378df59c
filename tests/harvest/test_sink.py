"""
Record Sink Tests

Every reducer write must be safe to repeat with the same arguments.
"""

import asyncio
import threading

import pytest

from hypercast.contracts import CursorPayload, UpsertAction
from hypercast.sink import (
    SqliteRecordSink, StoreRecordSink, build_delete_payload, build_upsert_payload
)
from hypercast.store import ReconciliationStore

from .fixtures import MERGE, delete_action, upsert_action


@pytest.fixture
def sink(tmp_path):
    return SqliteRecordSink(tmp_path / "casts.db")


def apply(sink, *actions):
    async def run():
        return [await sink.apply_action(action) for action in actions]
    return asyncio.run(run())


class TestPayloads:

    def test_upsert_payload(self):
        action = UpsertAction(
            hash="0xaa",
            owner_id=7,
            created_at_seconds=1700000000,
            text="gm",
            mentions=(2, 3),
            parent_owner_id=11,
            parent_hash="0x11",
            source_type=MERGE,
            event_id=2 ** 63 + 5,
            block_number=99
        )
        payload = build_upsert_payload(action)

        assert payload.created_at_millis == 1700000000000
        assert payload.event_timestamp_millis == 1700000000000
        assert payload.source_event_id == str(2 ** 63 + 5)
        assert payload.mentions_json == "[2,3]"
        assert payload.block_number == 99

    def test_delete_payload(self):
        payload = build_delete_payload(delete_action("0xbb", 4))
        assert payload.event_timestamp_millis == 1700000000000
        assert payload.source_event_id == "4"
        assert payload.block_number is None


class TestSqliteRecordSink:

    def test_upsert_then_replay(self, sink):
        assert apply(sink, upsert_action("0x01", 5, text="gm")) == [True]
        assert apply(sink, upsert_action("0x01", 4, text="stale")) == [False]

        row = sink.get_record("0x01")
        assert row["text"] == "gm"
        assert row["event_id"] == "5"
        assert row["is_deleted"] == 0

    def test_delete_keeps_content(self, sink):
        apply(sink, upsert_action("0x01", 5, text="gm"))

        assert apply(sink, delete_action("0x01", 6)) == [True]
        row = sink.get_record("0x01")
        assert row["is_deleted"] == 1
        assert row["text"] == "gm"
        assert row["event_id"] == "6"

    def test_delete_before_upsert(self, sink):
        assert apply(sink, delete_action("0x01", 10)) == [True]
        assert apply(sink, upsert_action("0x01", 9), upsert_action("0x01", 10)) == [False, False]
        assert sink.get_record("0x01")["is_deleted"] == 1

        assert apply(sink, upsert_action("0x01", 11)) == [True]
        assert sink.get_record("0x01")["is_deleted"] == 0

    def test_older_delete_ignored(self, sink):
        apply(sink, upsert_action("0x01", 5))
        assert apply(sink, delete_action("0x01", 4)) == [False]
        assert sink.get_record("0x01")["is_deleted"] == 0

    def test_event_ids_beyond_sqlite_integers(self, sink):
        big = 2 ** 64 - 1
        apply(sink, upsert_action("0x01", big - 1))
        assert apply(sink, upsert_action("0x01", big)) == [True]
        assert sink.get_record("0x01")["event_id"] == str(big)

    def test_received_at_preserved_on_update(self, sink):
        apply(sink, upsert_action("0x01", 1))
        first = sink.get_record("0x01")["received_at_millis"]
        apply(sink, upsert_action("0x01", 2, text="edit"))
        assert sink.get_record("0x01")["received_at_millis"] == first

    def test_cursor_row(self, sink):
        asyncio.run(sink.update_cursor(CursorPayload(12, "tok", "ci")))
        asyncio.run(sink.update_cursor(CursorPayload(15, None, "ci")))

        state = sink.get_sync_state()
        assert state["from_event_id"] == "15"
        assert state["page_token"] is None
        assert state["poller_name"] == "ci"

    def test_stats(self, sink):
        apply(sink, upsert_action("0x01", 1), upsert_action("0x02", 2), delete_action("0x03", 3))
        assert sink.get_stats() == {"live_casts": 2, "tombstones": 1}

    def test_writes_run_off_the_event_loop_thread(self, tmp_path):
        threads = []

        class RecordingSink(SqliteRecordSink):
            def _write_upsert(self, payload):
                threads.append(threading.get_ident())
                return super()._write_upsert(payload)

            def _write_cursor(self, payload):
                threads.append(threading.get_ident())
                return super()._write_cursor(payload)

        recording = RecordingSink(tmp_path / "casts.db")

        async def run():
            await recording.apply_action(upsert_action("0x01", 1))
            await recording.update_cursor(CursorPayload(2, None, "ci"))
            return threading.get_ident()

        loop_thread = asyncio.run(run())

        assert len(threads) == 2
        assert loop_thread not in threads
        assert recording.get_record("0x01")["event_id"] == "1"

    def test_missing_rows(self, sink):
        assert sink.get_record("0xnope") is None
        assert sink.get_sync_state() is None


class TestStoreRecordSink:

    def test_writes_reach_store(self):
        sink = StoreRecordSink()
        action = UpsertAction(
            hash="0x01",
            owner_id=3,
            created_at_seconds=100,
            text="hi",
            mentions=(4,),
            parent_owner_id=None,
            parent_hash=None,
            source_type=MERGE,
            event_id=1
        )

        assert apply(sink, action, delete_action("0x01", 0)) == [True, False]
        row = sink.store.get("0x01")
        assert row.mentions == (4,)
        assert row.created_at_millis == 100_000

    def test_writes_reach_the_callers_store(self):
        store = ReconciliationStore(max_visible=5)
        sink = StoreRecordSink(store)

        assert apply(sink, upsert_action("0x01", 1)) == [True]

        assert sink.store is store
        assert len(store) == 1
        assert store.get("0x01").event_id == 1

    def test_cursor_payload_kept(self):
        sink = StoreRecordSink()
        payload = CursorPayload(8, None, "ci")
        asyncio.run(sink.update_cursor(payload))

        assert sink.last_cursor_payload == payload
        assert sink.store.cursor.from_event_id == 8

    def test_unknown_action(self):
        with pytest.raises(TypeError):
            apply(StoreRecordSink(), object())
