"""Unit tests for field-level merge rules."""

import sys
from pathlib import Path

# Add parent directory to path to import project modules
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from models.listing import ListingRecord
from storage.merge import MergeEngine, MergeRule, MergeRuleSet, is_empty
from utils.errors import ValidationError

NOW = "2024-05-01T00:00:00+00:00"


@pytest.fixture
def engine():
    """Engine with default rules and a fixed clock."""
    return MergeEngine(MergeRuleSet.from_config(), clock=lambda: NOW)


@pytest.fixture
def existing():
    """A listing as stored after its first sync."""
    return ListingRecord(
        id="12345",
        listing_url="https://www.shiawasehome-reuse.com/bukken/12345/",
        address="新潟県新潟市中央区女池1丁目2-3",
        price=6930000.0,
        floor_plan="4LDK",
        build_area=98.55,
        land_area=165.29,
        tags=["駐車場2台", "リフォーム済"],
        lat=37.8964,
        long=139.0545,
        coordinate_source="script",
        dates={"posted": "2024-03-15", "renovated": None, "built": None},
        created_at="2024-04-01T00:00:00+00:00",
        last_updated="2024-04-01T00:00:00+00:00",
    )


class TestInsert:
    """New listings."""

    def test_new_listing_is_plain_insert(self, engine):
        """All known incoming fields are taken and timestamps are set."""
        result = engine.merge(None, {"id": "1", "price": 100.0, "unknown": "x"})

        assert result.inserted is True
        assert result.changes["price"] == 100.0
        assert result.changes["created_at"] == NOW
        assert result.changes["last_updated"] == NOW
        assert "unknown" not in result.changes


class TestUpdate:
    """Merging into an existing record."""

    def test_identical_data_changes_nothing(self, engine, existing):
        """Merging the stored values back is a no-op."""
        incoming = existing.to_dict()
        incoming["last_updated"] = "2030-01-01T00:00:00+00:00"

        result = engine.merge(existing, incoming)

        assert result.changed is False
        assert result.changes == {}

    def test_address_is_never_overwritten(self, engine, existing):
        """Write-once fields keep the first value."""
        result = engine.merge(existing, {"address": "別の住所"})
        assert result.changes == {}

    def test_write_once_field_is_filled_when_empty(self, engine, existing):
        """never_overwrite still fills a missing value."""
        existing.address = ""
        result = engine.merge(existing, {"address": "新しい住所"})
        assert result.changes["address"] == "新しい住所"

    def test_coordinates_only_fill_empty_values(self, engine, existing):
        """Stored coordinates are kept; missing ones are filled."""
        result = engine.merge(existing, {"lat": 35.0, "long": 135.0, "coordinate_source": "network"})
        assert result.changes == {}

        existing.lat = None
        existing.long = None
        existing.coordinate_source = None
        result = engine.merge(existing, {"lat": 35.0, "long": 135.0, "coordinate_source": "network"})
        assert result.changes["lat"] == 35.0
        assert result.changes["long"] == 135.0
        assert result.changes["coordinate_source"] == "network"

    def test_price_change_within_tolerance_is_noise(self, engine, existing):
        """Differences of at most 0.01 are not changes."""
        result = engine.merge(existing, {"price": 6930000.005})
        assert result.changed is False

    def test_price_change_is_written_with_timestamp(self, engine, existing):
        """A real price change returns only the delta plus last_updated."""
        result = engine.merge(existing, {"price": 6500000.0, "address": "別の住所"})
        assert result.changes == {"price": 6500000.0, "last_updated": NOW}

    def test_empty_incoming_values_never_clear(self, engine, existing):
        """A missing field on the page does not erase stored data."""
        result = engine.merge(
            existing,
            {"price": 0.0, "tags": [], "floor_plan": "", "lat": None, "dates": {"posted": None}},
        )
        assert result.changes == {}

    def test_tag_order_is_ignored(self, engine, existing):
        """Tags compare as sets."""
        result = engine.merge(existing, {"tags": ["リフォーム済", "駐車場2台"]})
        assert result.changed is False

        result = engine.merge(existing, {"tags": ["リフォーム済"]})
        assert result.changes["tags"] == ["リフォーム済"]

    def test_sold_flag_flips(self, engine, existing):
        """Booleans are never empty, so False -> True is a change."""
        result = engine.merge(existing, {"is_sold": True})
        assert result.changes["is_sold"] is True
        assert engine.merge(existing, {"is_sold": False}).changed is False

    def test_protected_fields_are_ignored(self, engine, existing):
        """id, created_at and content_hash never come from scraped data."""
        result = engine.merge(
            existing,
            {"id": "other", "created_at": "2030-01-01", "content_hash": "abc"},
        )
        assert result.changes == {}

    def test_merge_accepts_plain_dict(self, engine, existing):
        """Stored records may be passed as dictionaries."""
        result = engine.merge(existing.to_dict(), {"price": 1.0})
        assert result.changes["price"] == 1.0


class TestRuleSet:
    """Rule configuration."""

    def test_config_override_replaces_default(self, existing):
        """merge_rules in config can change a field's policy."""
        rules = MergeRuleSet.from_config({"address": {"policy": "overwrite_if_changed"}})
        engine = MergeEngine(rules, clock=lambda: NOW)

        result = engine.merge(existing, {"address": "別の住所"})
        assert result.changes["address"] == "別の住所"

    def test_always_overwrite_takes_any_different_value(self, existing):
        """always_overwrite writes even empty values, but only when different."""
        rules = MergeRuleSet.from_config({"floor_plan": {"policy": "always_overwrite"}})
        engine = MergeEngine(rules, clock=lambda: NOW)

        assert engine.merge(existing, {"floor_plan": ""}).changes["floor_plan"] == ""
        assert engine.merge(existing, {"floor_plan": "4LDK"}).changed is False

    def test_normalized_text_comparator(self, existing):
        """Whitespace-only differences are ignored with normalized_text."""
        existing.about_property = "南向き  日当たり良好"
        rules = MergeRuleSet.from_config(
            {"about_property": {"policy": "overwrite_if_changed", "comparator": "normalized_text"}}
        )
        engine = MergeEngine(rules, clock=lambda: NOW)
        assert engine.merge(existing, {"about_property": "南向き 日当たり良好"}).changed is False

    def test_unknown_policy_is_rejected(self):
        """Typos in merge_rules fail at startup."""
        with pytest.raises(ValidationError):
            MergeRuleSet.from_config({"price": {"policy": "sometimes"}})

    def test_unknown_comparator_is_rejected(self):
        with pytest.raises(ValidationError):
            MergeRuleSet.from_config({"price": {"policy": "overwrite_if_changed", "comparator": "fuzzy"}})

    def test_unlisted_field_defaults_to_never_overwrite(self):
        """Fields without a rule are write-once."""
        rule = MergeRuleSet.from_config().rule_for("removed_at")
        assert rule == MergeRule(field="removed_at")
        assert rule.policy == "never_overwrite"

    def test_rule_table_export(self):
        """to_dict exposes the resolved table."""
        table = MergeRuleSet.from_config().to_dict()
        assert table["price"] == {
            "policy": "overwrite_if_changed",
            "comparator": "numeric_tolerance",
            "tolerance": 0.01,
        }
        assert table["last_updated"]["policy"] == "always_overwrite"


class TestIsEmpty:
    """Emptiness used by the merge policies."""

    @pytest.mark.parametrize(
        "value",
        [None, "", "   ", [], (), {}, 0, 0.0, {"posted": None, "built": ""}],
    )
    def test_empty_values(self, value):
        assert is_empty(value) is True

    @pytest.mark.parametrize(
        "value",
        [False, True, "x", [""], 1.5, {"posted": "2024-01-01"}],
    )
    def test_present_values(self, value):
        assert is_empty(value) is False
