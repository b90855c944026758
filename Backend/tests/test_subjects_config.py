from __future__ import annotations

from pathlib import Path

from app.config import DEFAULT_SUBJECTS_CONFIG
from app.models.subjects import SubjectsConfig, load_subjects_config, parse_subjects_config


def test_parse_subjects_config_validates_feeds():
    config = parse_subjects_config(
        {
            "subjects": {
                "ai": [
                    "https://ai.example/rss",
                    "ftp://ai.example/rss",
                    "https://ai.example/rss",
                    42,
                    " https://ai.example/atom ",
                ],
                "single": "https://single.example/rss",
                "empty": [],
                "broken": {"url": "https://x.example"},
            }
        }
    )

    assert config.subjects == ["ai", "single"]
    assert config.feeds_for("ai") == ("https://ai.example/rss", "https://ai.example/atom")
    assert config.feeds_for("single") == ("https://single.example/rss",)
    assert config.feeds_for("missing") == ()


def test_subjects_sharing_a_store_key_keep_the_first():
    config = parse_subjects_config(
        {
            "subjects": {
                "AI": ["https://ai.example/rss"],
                "ai": ["https://other.example/rss"],
                "AI News": ["https://news.example/rss"],
                "ai news": ["https://news2.example/rss"],
                "php": ["https://php.example/rss"],
            }
        }
    )

    assert config.subjects == ["AI", "AI News", "php"]
    assert config.feeds_for("AI") == ("https://ai.example/rss",)


def test_parse_subjects_config_rejects_invalid_roots():
    assert len(parse_subjects_config(["not", "a", "dict"])) == 0
    assert len(parse_subjects_config({"subjects": ["ai"]})) == 0


def test_select_restricts_and_keeps_config_order():
    config = SubjectsConfig(feeds={"a": ("https://a.example",), "b": ("https://b.example",), "c": ("https://c.example",)})

    assert config.select(["c", "a", "unknown"]).subjects == ["a", "c"]
    assert config.select(None) is config


def test_load_subjects_config_reads_yaml(tmp_path: Path):
    path = tmp_path / "subjects.yml"
    path.write_text(
        "subjects:\n"
        "  php:\n"
        "    - https://www.php.net/feed.atom\n"
        "    - https://stitcher.io/rss\n",
        encoding="utf-8",
    )

    config = load_subjects_config(path)

    assert config.feeds_for("php") == ("https://www.php.net/feed.atom", "https://stitcher.io/rss")


def test_load_subjects_config_degrades_to_empty(tmp_path: Path):
    assert len(load_subjects_config(tmp_path / "missing.yml")) == 0

    broken = tmp_path / "broken.yml"
    broken.write_text("subjects: [unclosed", encoding="utf-8")
    assert len(load_subjects_config(broken)) == 0


def test_bundled_subjects_config_is_valid():
    config = load_subjects_config(DEFAULT_SUBJECTS_CONFIG)

    assert config.subjects == ["php", "symfony", "ai", "industry", "javascript"]
    assert all(config.feeds_for(subject) for subject in config.subjects)
