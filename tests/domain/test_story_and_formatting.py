from datetime import datetime, timedelta, timezone

import pytest

from story_player.domain.formatting import format_duration, format_listening_time, format_time_ago
from story_player.domain.story import Story, upgrade_to_https


def test_story_requires_id_and_audio():
    with pytest.raises(ValueError):
        Story(id="", audio_url="https://cdn/a.mp3", duration_hint=0)
    with pytest.raises(ValueError, match="no audio source"):
        Story(id="s1", audio_url="  ", duration_hint=0)


def test_story_from_platform_payload_upgrades_http_and_keeps_extras():
    story = Story.from_mapping(
        {
            "_id": "64f0",
            "slug": "prophet-yunus",
            "title": "Prophet Yunus",
            "titleArabic": "يونس",
            "audioUrl": "http://cdn.example.com/yunus.mp3",
            "thumbnailUrl": "http://cdn.example.com/yunus.jpg",
            "duration": "421.5",
            "category": "prophets",
        }
    )

    assert story.id == "64f0"
    assert story.audio_url == "https://cdn.example.com/yunus.mp3"
    assert story.thumbnail_url == "https://cdn.example.com/yunus.jpg"
    assert story.duration_hint == 421.5
    assert story.extra == {"category": "prophets"}
    assert story.to_mapping()["category"] == "prophets"
    assert Story.from_mapping(story.to_mapping()) == story


def test_story_duration_hint_tolerates_garbage():
    story = Story.from_mapping({"id": "s", "audio_url": "a.mp3", "duration": "n/a"})

    assert story.duration_hint == 0.0


def test_upgrade_to_https_leaves_other_schemes():
    assert upgrade_to_https("http://x/a.mp3") == "https://x/a.mp3"
    assert upgrade_to_https("https://x/a.mp3") == "https://x/a.mp3"
    assert upgrade_to_https("/tmp/a.mp3") == "/tmp/a.mp3"
    assert upgrade_to_https(None) is None


def test_format_duration():
    assert format_duration(None) == "0:00"
    assert format_duration(float("nan")) == "0:00"
    assert format_duration(65.9) == "1:05"
    assert format_duration(3725) == "1:02:05"


def test_format_listening_time():
    assert format_listening_time(0) == "0m"
    assert format_listening_time(59 * 60) == "59m"
    assert format_listening_time(2 * 3600 + 5 * 60) == "2h 5m"


def test_format_time_ago_buckets():
    now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    assert format_time_ago(None, now=now) == ""
    assert format_time_ago(now - timedelta(seconds=30), now=now) == "just now"
    assert format_time_ago(now - timedelta(minutes=5), now=now) == "5m ago"
    assert format_time_ago(now - timedelta(hours=3), now=now) == "3h ago"
    assert format_time_ago(now - timedelta(days=2), now=now) == "2d ago"
    assert format_time_ago(now - timedelta(days=14), now=now) == "2w ago"
    assert format_time_ago(now - timedelta(days=65), now=now) == "2mo ago"
    assert format_time_ago(now - timedelta(days=800), now=now) == "2y ago"
    assert format_time_ago(datetime(2024, 5, 1, 11, 0), now=now) == "1h ago"
