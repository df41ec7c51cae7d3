"""
Tests for aidwatch/services/normalizers.py - payload -> RawSignal per source kind.
"""
from datetime import datetime, timezone

from aidwatch.models.enums import SourceKind
from aidwatch.services.normalizers import (
    MAX_DESCRIPTION_LENGTH,
    MAX_TITLE_LENGTH,
    normalize,
    normalize_generic,
    normalize_gdacs,
    normalize_reliefweb,
    normalize_rss,
    normalize_slack,
    normalize_twitter,
    normalize_usgs,
    normalize_who,
)

HASH = "0123456789abcdef" + "f" * 48


class TestGdacs:
    def test_flat_payload(self):
        signal = normalize_gdacs({
            "name": "Tropical Cyclone FREDDY",
            "description": "Landfall expected near Quelimane",
            "country": "Mozambique",
            "latitude": -17.9,
            "longitude": 36.9,
            "date": "2023-03-11T18:00:00Z",
            "url": "https://gdacs.org/report/1000",
        }, HASH)
        assert signal.title == "GDACS Alert: Tropical Cyclone FREDDY"
        assert signal.location == "Mozambique"
        assert signal.latitude == -17.9
        assert signal.origin_fingerprint == "https://gdacs.org/report/1000"
        assert signal.occurred_at == datetime(2023, 3, 11, 18, 0, tzinfo=timezone.utc)

    def test_geojson_properties(self):
        signal = normalize_gdacs({"properties": {"eventname": "Flood in Chad"}}, HASH)
        assert signal.title == "GDACS Alert: Flood in Chad"

    def test_fallback_fingerprint(self):
        signal = normalize_gdacs({"name": "Drought"}, HASH)
        assert signal.origin_fingerprint == "gdacs-webhook-0123456789abcdef"

    def test_empty_returns_none(self):
        assert normalize_gdacs({"country": "Chad"}, HASH) is None


class TestUsgs:
    def test_feature(self):
        signal = normalize_usgs({
            "id": "us7000abcd",
            "properties": {"title": "M 6.1 - 20 km SW of Herat", "place": "20 km SW of Herat", "mag": 6.1, "time": 1696665600000},
            "geometry": {"coordinates": [62.0, 34.3, 10]},
        }, HASH)
        assert signal.title == "Earthquake: M 6.1 - 20 km SW of Herat"
        assert signal.description == "Magnitude 6.1. 20 km SW of Herat"
        assert signal.longitude == 62.0
        assert signal.latitude == 34.3
        assert signal.origin_fingerprint == "us7000abcd"
        assert signal.occurred_at == datetime(2023, 10, 7, 8, 0, tzinfo=timezone.utc)

    def test_missing_magnitude(self):
        signal = normalize_usgs({"properties": {"place": "Offshore Sumatra"}}, HASH)
        assert signal.description == "Magnitude N/A. Offshore Sumatra"
        assert signal.origin_fingerprint == "usgs-webhook-0123456789abcdef"

    def test_empty_returns_none(self):
        assert normalize_usgs({"properties": {"mag": 4.0}}, HASH) is None


class TestReliefWeb:
    def test_country_list(self):
        signal = normalize_reliefweb({
            "fields": {
                "title": "Sudan: Displacement update",
                "body": "Over 50,000 newly displaced in Darfur.",
                "country": [{"name": "Sudan"}, {"name": "Chad"}],
                "url": "https://reliefweb.int/node/1",
            },
        }, HASH)
        assert signal.location == "Sudan"
        assert signal.origin_fingerprint == "https://reliefweb.int/node/1"

    def test_country_object(self):
        signal = normalize_reliefweb({"fields": {"title": "Update", "country": {"name": "Haiti"}}}, HASH)
        assert signal.location == "Haiti"

    def test_body_only_becomes_title(self):
        signal = normalize_reliefweb({"fields": {"body": "x" * 300}}, HASH)
        assert signal.title == "x" * 100


class TestWho:
    def test_headline(self):
        signal = normalize_who({"headline": "Cholera - Malawi", "content": "Cases rising", "region": "AFRO"}, HASH)
        assert signal.title == "WHO Alert: Cholera - Malawi"
        assert signal.location == "AFRO"

    def test_description_only(self):
        signal = normalize_who({"description": "Marburg cases confirmed"}, HASH)
        assert signal.title == "WHO Alert: Health Alert"


class TestMessages:
    def test_slack_text(self):
        signal = normalize_slack({"text": "Road to Bor washed out", "event_id": "Ev01", "event_time": 1700000000}, HASH)
        assert signal.title == "Road to Bor washed out"
        assert signal.origin_fingerprint == "slack-Ev01"
        assert signal.occurred_at == datetime.fromtimestamp(1700000000, tz=timezone.utc)

    def test_slack_nested_event(self):
        signal = normalize_slack({"event": {"text": "Nested message"}}, HASH)
        assert signal.description == "Nested message"
        assert signal.origin_fingerprint == "slack-0123456789abcdef"

    def test_slack_long_text_title_truncated(self):
        text = "a" * 250
        signal = normalize_slack({"text": text}, HASH)
        assert len(signal.title) == 100
        assert signal.description == text

    def test_twitter(self):
        signal = normalize_twitter({"data": {"text": "Breaking: quake felt in Kathmandu", "id": "1789"}}, HASH)
        assert signal.origin_fingerprint == "twitter-1789"

    def test_twitter_without_text(self):
        assert normalize_twitter({"data": {"id": "1"}}, HASH) is None


class TestRss:
    def test_item(self):
        signal = normalize_rss({
            "item": {
                "title": "Floods in Pakistan",
                "description": "Sindh province worst affected",
                "link": "https://news.example/floods",
                "pubDate": "Tue, 30 Aug 2022 10:00:00 +0500",
            },
        }, HASH)
        assert signal.origin_fingerprint == "https://news.example/floods"
        assert signal.occurred_at == datetime(2022, 8, 30, 5, 0, tzinfo=timezone.utc)

    def test_unparseable_date_ignored(self):
        signal = normalize_rss({"item": {"title": "Update", "pubDate": "sometime last week"}}, HASH)
        assert signal.occurred_at is None


class TestGeneric:
    def test_scenario_payload(self):
        signal = normalize_generic({"title": "Flooding in Jonglei", "description": "Heavy rains..."}, HASH)
        assert signal.title == "Flooding in Jonglei"
        assert signal.description == "Heavy rains..."
        assert signal.origin_fingerprint == "custom-webhook-0123456789abcdef"

    def test_title_only_reuses_title_as_description(self):
        signal = normalize_generic({"title": "Quarterly earnings report"}, HASH)
        assert signal.description == "Quarterly earnings report"

    def test_kind_in_fingerprint(self):
        signal = normalize_generic({"title": "Zap"}, HASH, SourceKind.ZAPIER)
        assert signal.origin_fingerprint.startswith("zapier-webhook-")

    def test_naive_timestamp_is_utc(self):
        signal = normalize_generic({"title": "t", "timestamp": "2024-05-01T12:00:00"}, HASH)
        assert signal.occurred_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_truncation(self):
        signal = normalize_generic({"title": "t" * 800, "description": "d" * 5000}, HASH)
        assert len(signal.title) == MAX_TITLE_LENGTH
        assert len(signal.description) == MAX_DESCRIPTION_LENGTH

    def test_nested_values_ignored(self):
        assert normalize_generic({"title": {"en": "nested"}, "body": ["x"]}, HASH) is None


class TestNormalizeDispatch:
    def test_routes_by_kind(self):
        signal = normalize("USGS", {"properties": {"place": "Near Tonga"}}, HASH)
        assert signal.title == "Earthquake: Near Tonga"

    def test_unknown_kind_uses_generic(self):
        signal = normalize("TELEGRAM", {"title": "Message"}, HASH)
        assert signal.origin_fingerprint.startswith("custom-webhook-")

    def test_ifttt_uses_generic(self):
        signal = normalize("IFTTT", {"title": "Applet fired"}, HASH)
        assert signal.origin_fingerprint.startswith("ifttt-webhook-")

    def test_non_object_payload(self):
        assert normalize("CUSTOM", ["not", "an", "object"], HASH) is None
        assert normalize("CUSTOM", "plain string", HASH) is None

    def test_empty_object(self):
        assert normalize("CUSTOM", {}, HASH) is None
