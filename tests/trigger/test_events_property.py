"""Property-based tests for notification parsing and eligibility."""

from urllib.parse import quote_plus

import pytest
from hypothesis import assume, given, settings, strategies as st

from hls_pipeline.modules.transcoding.renditions import STANDARD_PLAN
from hls_pipeline.modules.trigger import events
from hls_pipeline.modules.trigger.events import (
    TriggerRecord,
    decode_key,
    is_eligible_key,
    is_object_created,
    parse_records,
    select_sources,
)

TIERS = STANDARD_PLAN.tier_names

key_text = st.text(
    alphabet=st.characters(blacklist_categories=("Cs", "Cc")),
    min_size=1,
    max_size=60,
)


def s3_record(key, bucket="media", event_name="ObjectCreated:Put", size=1024):
    return {
        "eventName": event_name,
        "s3": {
            "bucket": {"name": bucket},
            "object": {"key": key, "size": size},
        },
    }


class TestKeyDecoding:
    """Notification keys arrive form-encoded."""

    @given(key=key_text)
    @settings(max_examples=200)
    def test_decoding_inverts_form_encoding(self, key: str) -> None:
        assert decode_key(quote_plus(key, safe="/")) == key

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("courses/101/lecture+one.mp4", "courses/101/lecture one.mp4"),
            ("courses/101/caf%C3%A9.mp4", "courses/101/café.mp4"),
            ("a%2Bb.mp4", "a+b.mp4"),
        ],
    )
    def test_examples(self, raw: str, expected: str) -> None:
        assert decode_key(raw) == expected


class TestEligibility:
    """Only new source videos are transcoded."""

    @pytest.mark.parametrize(
        "event_name",
        ["ObjectCreated:Put", "ObjectCreated:CompleteMultipartUpload", "s3:ObjectCreated:Copy", ""],
    )
    def test_created_events(self, event_name: str) -> None:
        assert is_object_created(event_name)

    @pytest.mark.parametrize("event_name", ["ObjectRemoved:Delete", "s3:ObjectAccessed:Get", "ObjectRestore:Post"])
    def test_other_events(self, event_name: str) -> None:
        assert not is_object_created(event_name)

    @given(stem=key_text.filter(lambda s: "/" not in s))
    @settings(max_examples=100)
    def test_any_mp4_source_is_eligible(self, stem: str) -> None:
        assume(not any(f"_{tier}" in stem for tier in TIERS))
        assert is_eligible_key(f"uploads/{stem}.mp4", ".mp4", TIERS)
        assert is_eligible_key(f"uploads/{stem}.MP4", ".mp4", TIERS)

    @given(stem=key_text.filter(lambda s: "/" not in s), tier=st.sampled_from(TIERS))
    @settings(max_examples=100)
    def test_rendition_outputs_never_retrigger(self, stem: str, tier: str) -> None:
        assert not is_eligible_key(f"uploads/{stem}_{tier}.mp4", ".mp4", TIERS)

    @pytest.mark.parametrize(
        "key",
        ["thumbnail.png", "courses/101/lecture.m3u8", "courses/101/lecture_720p_000.ts", "courses/", ".mp4", "dir/.mp4", ""],
    )
    def test_ineligible_keys(self, key: str) -> None:
        assert not is_eligible_key(key, ".mp4", TIERS)


class TestParseRecords:
    """Extracting records from the notification payload."""

    def test_fields_are_extracted(self) -> None:
        records = parse_records({"Records": [s3_record("courses/101/lecture+1.mp4", size=42)]})

        assert len(records) == 1
        record = records[0]
        assert record.bucket == "media"
        assert record.key == "courses/101/lecture 1.mp4"
        assert record.size == 42
        assert record.event_name == "ObjectCreated:Put"

    def test_malformed_records_are_dropped(self) -> None:
        event = {
            "Records": [
                {"eventName": "ObjectCreated:Put"},
                {"s3": {"bucket": {}, "object": {"key": "a.mp4"}}},
                "not a record",
                s3_record("ok.mp4"),
            ]
        }

        assert [r.key for r in parse_records(event)] == ["ok.mp4"]

    @pytest.mark.parametrize(
        "bad",
        [
            s3_record(123),
            s3_record(""),
            s3_record("x.mp4", bucket=""),
            s3_record("x.mp4", bucket=None),
            s3_record("x.mp4", event_name=7),
            {"s3": {"bucket": {"name": "media"}, "object": None}},
        ],
    )
    def test_wrongly_typed_fields_are_dropped(self, bad) -> None:
        event = {"Records": [s3_record("ok.mp4"), bad, s3_record("later.mp4")]}

        assert [r.key for r in parse_records(event)] == ["ok.mp4", "later.mp4"]

    @pytest.mark.parametrize("event", [{}, {"Records": None}, {"Records": []}])
    def test_empty_notifications(self, event) -> None:
        assert parse_records(event) == []

    def test_missing_or_invalid_size(self) -> None:
        event = {"Records": [s3_record("a.mp4", size=None), s3_record("b.mp4", size="big")]}

        assert [r.size for r in parse_records(event)] == [None, None]


class TestSelectSources:
    """Which records of a notification turn into transcode runs."""

    def test_skips_ineligible_records(self) -> None:
        event = {
            "Records": [
                s3_record("courses/101/lecture.mp4"),
                s3_record("thumbnail.png"),
                s3_record("courses/101/lecture_480p.mp4"),
                s3_record("courses/101/old.mp4", event_name="ObjectRemoved:Delete"),
                s3_record("courses/102/intro.mp4", bucket="other"),
            ]
        }

        sources, skipped = select_sources(event, ".mp4", TIERS)

        assert [(s.bucket, s.key) for s in sources] == [
            ("media", "courses/101/lecture.mp4"),
            ("other", "courses/102/intro.mp4"),
        ]
        assert skipped == 3

    @given(
        keys=st.lists(
            st.sampled_from(["a.mp4", "b.png", "c_720p.mp4", "d/e.MP4", "f.m3u8", "g.mov"]),
            max_size=20,
        )
    )
    @settings(max_examples=100)
    def test_every_record_is_either_selected_or_skipped(self, keys) -> None:
        event = {"Records": [s3_record(key) for key in keys]}

        sources, skipped = select_sources(event, ".mp4", TIERS)

        assert len(sources) + skipped == len(keys)
        assert [s.key for s in sources] == [k for k in keys if k in ("a.mp4", "d/e.MP4")]

    @pytest.mark.parametrize("bad", [s3_record("x.mp4", bucket=""), s3_record(123)])
    def test_malformed_record_beside_valid_one(self, bad) -> None:
        event = {"Records": [s3_record("courses/101/lecture.mp4"), bad]}

        sources, skipped = select_sources(event, ".mp4", TIERS)

        assert [(s.bucket, s.key) for s in sources] == [("media", "courses/101/lecture.mp4")]
        assert skipped == 0

    def test_invalid_source_reference_is_skipped(self, monkeypatch) -> None:
        monkeypatch.setattr(
            events,
            "parse_records",
            lambda event: [
                TriggerRecord(bucket="", key="x.mp4"),
                TriggerRecord(bucket="media", key="ok.mp4"),
            ],
        )

        sources, skipped = select_sources({}, ".mp4", TIERS)

        assert [s.key for s in sources] == ["ok.mp4"]
        assert skipped == 1
