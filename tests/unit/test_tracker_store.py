"""Unit tests for the JSON tracker store"""
import json
import pytest
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from tracker_agent.db.tracker_store import TrackerStore
from tracker_agent.exceptions import StorageError
from tracker_agent.models.tracking import Tracker


class TestTrackerRegistry:
    """Tracker create/list/update/delete"""

    def test_create_tracker_initialises_empty_records(self, store):
        result = store.create_tracker({"name": "Water Intake", "type": "water"})

        assert result.success is True
        assert result.tracker.name == "water-intake"
        assert result.tracker.type == "hydration"
        assert result.tracker.display_name == "Water Intake"
        assert store.get_records_path("water-intake").exists()
        assert store.get_records("water-intake") == []

    def test_create_tracker_twice_fails_without_mutation(self, store, nutrition_tracker):
        store.add_record("food", {"meal": "Toast", "calories": 80})

        result = store.create_tracker({"name": "FOOD", "type": "workout"})

        assert result.success is False
        assert "already exists" in result.message
        assert store.get_tracker("food").type == "nutrition"
        assert len(store.get_records("food")) == 1

    def test_create_tracker_accepts_model_instance(self, store):
        result = store.create_tracker(Tracker(name="sleep", type="sleep"))
        assert result.success is True
        assert store.get_tracker("sleep").metrics == ["hours", "quality"]

    def test_create_tracker_rejects_empty_name(self, store):
        result = store.create_tracker({"name": "!!!", "type": "custom"})
        assert result.success is False
        assert store.list_trackers() == []

    def test_list_trackers_insertion_order(self, store):
        for name in ["zeta", "alpha", "mid"]:
            store.create_tracker({"name": name})

        assert [t.name for t in store.list_trackers()] == ["zeta", "alpha", "mid"]

    def test_legacy_food_type_is_nutrition(self, store):
        store.create_tracker({"name": "meals", "type": "food"})
        assert store.get_tracker("meals").type == "nutrition"

    def test_update_tracker_merges_config(self, store, nutrition_tracker, clock):
        clock.advance(hours=1)
        result = store.update_tracker("food", {"display_name": "Meals", "config": {"goal": "2000 kcal"}})

        assert result.success is True
        updated = store.get_tracker("food")
        assert updated.display_name == "Meals"
        assert updated.config.goal == "2000 kcal"
        assert updated.config.metrics == ["calories", "protein"]
        assert updated.updated_at == clock.current

    def test_update_tracker_name_is_immutable(self, store, nutrition_tracker):
        result = store.update_tracker("food", {"name": "diet"})
        assert result.success is False
        assert store.get_tracker("food") is not None
        assert store.get_tracker("diet") is None

    def test_update_unknown_tracker(self, store):
        assert store.update_tracker("ghost", {"description": "boo"}).success is False

    def test_delete_tracker_removes_records(self, store, nutrition_tracker):
        store.add_record("food", {"meal": "Toast"})

        result = store.delete_tracker("food")

        assert result.success is True
        assert store.get_tracker("food") is None
        assert not store.get_tracker_dir("food").exists()
        assert store.get_records("food") == []

    def test_delete_missing_tracker_fails(self, store):
        result = store.delete_tracker("ghost")
        assert result.success is False
        assert "not found" in result.message.lower()


class TestRecords:
    """Record append, update and range queries"""

    def test_add_record_generates_fields(self, store, nutrition_tracker, clock):
        result = store.add_record("food", {"meal": "Latte", "calories": 190})

        record = result.record
        assert result.success is True
        assert record.timestamp == clock.current
        assert record.date == "2024-03-13"
        assert record.source == "natural-language"
        millis, suffix = record.id.split("-")
        assert int(millis) == int(clock.current.timestamp() * 1000)
        assert len(suffix) == 6

    def test_round_trip_recent_record(self, store, nutrition_tracker):
        data = {"meal": "Salad", "calories": 150, "vegan": True, "note": "lunch"}
        store.add_record("food", data)

        recent = store.get_recent_records("food", 1)

        assert len(recent) == 1
        assert recent[0].data == data

    def test_add_record_accepts_any_shape(self, store, nutrition_tracker):
        result = store.add_record("food", {"anything": "goes", "nested_count": 3})
        assert result.success is True

    def test_date_uses_store_timezone(self, tmp_path):
        # 23:30 UTC is already the next day in Tokyo
        moment = datetime(2024, 3, 13, 23, 30, tzinfo=ZoneInfo("UTC"))
        tokyo = TrackerStore(tmp_path, tz_name="Asia/Tokyo", clock=lambda: moment)
        tokyo.create_tracker({"name": "sleep", "type": "sleep"})

        record = tokyo.add_record("sleep", {"hours": 7}).record

        assert record.date == "2024-03-14"
        assert record.date == record.timestamp.strftime("%Y-%m-%d")

    def test_add_record_with_explicit_timestamp(self, store, nutrition_tracker, clock):
        earlier = clock.current - timedelta(days=2)
        record = store.add_record("food", {"meal": "Pizza"}, timestamp=earlier).record
        assert record.date == "2024-03-11"

    def test_records_by_date_range_inclusive(self, store, nutrition_tracker, clock):
        for days_ago in [3, 2, 1, 0]:
            store.add_record("food", {"calories": days_ago}, timestamp=clock.current - timedelta(days=days_ago))

        in_range = store.get_records_by_date_range("food", "2024-03-11", "2024-03-12")
        single_day = store.get_records_by_date_range("food", "2024-03-13", "2024-03-13")
        open_start = store.get_records_by_date_range("food", None, "2024-03-10")

        assert [r.data["calories"] for r in in_range] == [2, 1]
        assert [r.date for r in single_day] == ["2024-03-13"]
        assert [r.data["calories"] for r in open_start] == [3]

    def test_recent_records_newest_first(self, store, nutrition_tracker, clock):
        store.add_record("food", {"meal": "late"}, timestamp=clock.current)
        store.add_record("food", {"meal": "early"}, timestamp=clock.current - timedelta(hours=5))
        store.add_record("food", {"meal": "middle"}, timestamp=clock.current - timedelta(hours=1))

        assert [r.data["meal"] for r in store.get_recent_records("food", 2)] == ["late", "middle"]
        assert store.get_recent_records("food", 0) == []

    def test_update_record_shallow_merge(self, store, nutrition_tracker, clock):
        record = store.add_record("food", {"meal": "Burger", "calories": 350}).record
        clock.advance(minutes=5)

        result = store.update_record("food", record.id, {"calories": 500, "protein": 25})

        assert result.success is True
        assert result.record.data == {"meal": "Burger", "calories": 500, "protein": 25}
        assert result.record.updated_at == clock.current
        assert result.record.timestamp == record.timestamp
        assert store.get_records("food")[0].data["calories"] == 500

    def test_update_unknown_record(self, store, nutrition_tracker):
        result = store.update_record("food", "nope", {"calories": 1})
        assert result.success is False

    def test_delete_record(self, store, nutrition_tracker):
        keep = store.add_record("food", {"meal": "keep"}).record
        drop = store.add_record("food", {"meal": "drop"}).record

        result = store.delete_record("food", drop.id)

        assert result.success is True
        assert result.record.id == drop.id
        assert [r.id for r in store.get_records("food")] == [keep.id]

    def test_get_last_logged_across_trackers(self, store, nutrition_tracker, workout_tracker, clock):
        store.add_record("food", {"meal": "Toast"}, timestamp=clock.current - timedelta(hours=2))
        clock.advance(seconds=1)
        store.add_record("workouts", {"count": 20}, timestamp=clock.current - timedelta(hours=1))

        tracker, record = store.get_last_logged()

        assert tracker.name == "workouts"
        assert record.data == {"count": 20}

    def test_get_last_logged_ignores_backdating(self, store, nutrition_tracker, workout_tracker, clock):
        store.add_record("workouts", {"count": 20})
        clock.advance(seconds=1)
        store.add_record("food", {"meal": "Coffee"})
        clock.advance(seconds=1)
        store.add_record("food", {"meal": "Eggs"}, timestamp=clock.current - timedelta(hours=4))

        tracker, record = store.get_last_logged()

        assert tracker.name == "food"
        assert record.data == {"meal": "Eggs"}

    def test_backdated_id_embeds_creation_instant(self, store, nutrition_tracker, clock):
        earlier = clock.current - timedelta(hours=3)
        record = store.add_record("food", {"meal": "Eggs"}, timestamp=earlier).record

        assert record.timestamp == earlier
        assert record.created_ms == int(clock.current.timestamp() * 1000)

    def test_get_last_logged_empty(self, store, nutrition_tracker):
        assert store.get_last_logged() is None


class TestFailureHandling:
    """I/O problems come back as failed results, never exceptions"""

    def test_corrupt_records_file(self, store, nutrition_tracker):
        store.get_records_path("food").write_text("{not json", encoding="utf-8")

        result = store.add_record("food", {"meal": "Toast"})

        assert result.success is False
        assert "Corrupt" in result.message
        assert store.get_records("food") == []

    def test_corrupt_registry(self, store):
        store.data_path.mkdir(parents=True, exist_ok=True)
        store.registry_path.write_text("[]", encoding="utf-8")

        assert store.list_trackers() == []
        assert store.create_tracker({"name": "food"}).success is False

    def test_malformed_record_is_skipped(self, store, nutrition_tracker):
        store.add_record("food", {"meal": "Toast"})
        path = store.get_records_path("food")
        document = json.loads(path.read_text(encoding="utf-8"))
        document["records"].append({"id": "broken"})
        path.write_text(json.dumps(document), encoding="utf-8")

        assert [r.data["meal"] for r in store.get_records("food")] == ["Toast"]

    def test_write_leaves_no_temp_files(self, store, nutrition_tracker):
        store.add_record("food", {"meal": "Toast"})
        leftovers = list(store.get_tracker_dir("food").glob("*.tmp"))
        assert leftovers == []

    def test_failed_delete_keeps_records(self, store, nutrition_tracker, monkeypatch):
        store.add_record("food", {"meal": "Toast"})

        def fail(trackers):
            raise StorageError(message="disk full", operation="write_document")

        monkeypatch.setattr(store, "_save_registry", fail)
        result = store.delete_tracker("food")

        assert result.success is False
        assert store.get_tracker("food") is not None
        assert [r.data["meal"] for r in store.get_records("food")] == ["Toast"]
