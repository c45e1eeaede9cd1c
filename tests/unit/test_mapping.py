from datetime import datetime, timedelta, timezone

from goodworks_agensgraph.mapping import (
    RecordProjection,
    format_timestamp,
    good_work_from_record,
    good_work_properties,
    parse_timestamp,
)
from goodworks_agensgraph.models import EffortLevel, GoodWorkStatus


class TestTimestamps:
    def test_format_converts_to_utc(self):
        value = datetime(2026, 3, 1, 10, 30, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(value) == "2026-03-01T08:30:00Z"

    def test_format_naive_is_taken_as_utc(self):
        assert format_timestamp(datetime(2026, 3, 1, 8, 30)) == "2026-03-01T08:30:00Z"

    def test_format_none(self):
        assert format_timestamp(None) is None

    def test_parse_stored_form(self):
        assert parse_timestamp("2026-03-01T08:30:00Z") == datetime(
            2026, 3, 1, 8, 30, tzinfo=timezone.utc
        )

    def test_parse_empty_values(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None

    def test_stored_strings_sort_chronologically(self):
        earlier = format_timestamp(datetime(2026, 1, 9, 23, 0, tzinfo=timezone.utc))
        later = format_timestamp(datetime(2026, 1, 10, 1, 0, tzinfo=timezone.utc))
        assert earlier < later


class TestRecordProjection:
    def test_flat_column_wins_over_node(self):
        p = RecordProjection({"city": "Austin", "g": {"city": "Dallas"}}, "g")
        assert p.text("city") == "Austin"

    def test_falls_back_to_node_property(self):
        p = RecordProjection({"city": None, "g": {"city": "Dallas"}}, "g")
        assert p.text("city") == "Dallas"

    def test_type_defaults(self):
        p = RecordProjection({"g": {}}, "g")

        assert p.text("name") == ""
        assert p.boolean("is_virtual") is False
        assert p.integer("minimum_age") == 0
        assert p.optional_integer("max_participants") is None
        assert p.number("latitude") == 0.0
        assert p.timestamp("start_time") is None
        assert p.strings("tags") == []

    def test_strings_drop_empty_items(self):
        p = RecordProjection({"tags": ["outdoors", None, "", "family"]})
        assert p.strings("tags") == ["outdoors", "family"]

    def test_column_alias(self):
        p = RecordProjection({"contact_name": "Dana", "n": {"name": "Other"}}, "n")
        assert p.text("name", column="contact_name") == "Dana"


class TestGoodWorkMapping:
    def test_properties_use_stored_forms(self, good_work):
        properties = good_work_properties(good_work)

        assert properties["start_time"] == "2026-11-07T14:00:00Z"
        assert properties["effort_level"] == "Moderate"
        assert properties["status"] == "Active"
        # neighbourhood fields live on other nodes
        assert "category" not in properties
        assert "tags" not in properties
        assert "contact_email" not in properties
        assert "organization_id" not in properties

    def test_from_record_combines_node_and_columns(self):
        record = {
            "id": "3.7",
            "g": {
                "name": "Food Bank Sorting Shift",
                "start_time": "2026-11-04T17:00:00Z",
                "effort_level": "Easy",
                "status": "Full",
                "current_participants": 4,
                "max_participants": 4,
            },
            "category": "Hunger Relief",
            "tags": ["food"],
            "interested_count": 2,
            "signed_up_count": 4,
            "is_user_signed_up": True,
        }

        work = good_work_from_record(record)

        assert work.id == "3.7"
        assert work.name == "Food Bank Sorting Shift"
        assert work.category == "Hunger Relief"
        assert work.tags == ["food"]
        assert work.start_time == datetime(2026, 11, 4, 17, 0, tzinfo=timezone.utc)
        assert work.effort_level == EffortLevel.EASY
        assert work.status == GoodWorkStatus.FULL
        assert work.max_participants == 4
        assert work.signed_up_count == 4
        assert work.is_user_signed_up is True
        assert work.is_user_interested is False

    def test_missing_enums_get_defaults(self):
        work = good_work_from_record({"id": "3.1", "g": {"name": "Bare"}})

        assert work.effort_level == EffortLevel.MODERATE
        assert work.status == GoodWorkStatus.ACTIVE
        assert work.max_participants is None
        assert work.organization_id is None

    def test_stored_enum_variants(self):
        work = good_work_from_record(
            {"id": "3.1", "g": {"name": "x", "effort_level": "easy", "status": "COMPLETED"}}
        )

        assert work.effort_level == EffortLevel.EASY
        assert work.status == GoodWorkStatus.COMPLETED

    def test_unknown_enum_values_fall_back_to_defaults(self):
        work = good_work_from_record(
            {"id": "3.1", "g": {"name": "x", "effort_level": "Hard", "status": "Archived"}}
        )

        assert work.effort_level == EffortLevel.MODERATE
        assert work.status == GoodWorkStatus.ACTIVE

    def test_negative_participant_count_clamped(self):
        work = good_work_from_record({"id": "3.1", "g": {"current_participants": -2}})
        assert work.current_participants == 0
