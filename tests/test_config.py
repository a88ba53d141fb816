import json

import pytest

from elf_a2l_obfuscator.config import ObfuscatorConfig


def test_defaults():
    config = ObfuscatorConfig()
    assert config.get("random", "seed") is None
    assert config.get("a2l", "encoding") == "utf-8"
    assert config.get("a2l", "missing", default=3) == 3
    assert config.get_label_words() == (1, 4)


def test_load_merges_into_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"a2l": {"strip_comments": False}, "random": {"seed": 5}}))
    config = ObfuscatorConfig(str(path))
    assert config.get("a2l", "strip_comments") is False
    assert config.get("a2l", "encoding") == "utf-8"
    assert config.get("random", "seed") == 5


def test_set_creates_nested_keys():
    config = ObfuscatorConfig()
    config.set(12, "dwarf", "address_mask_keep_bits")
    config.set("x", "new", "section", "key")
    assert config.get("dwarf", "address_mask_keep_bits") == 12
    assert config.get("new", "section", "key") == "x"


def test_save_and_load(tmp_path):
    config = ObfuscatorConfig()
    config.set(42, "random", "seed")
    config.set([2, 3], "a2l", "label_words")
    path = tmp_path / "saved.json"
    config.save(str(path))

    loaded = ObfuscatorConfig(str(path))
    assert loaded.config == config.config
    assert loaded.get_label_words() == (2, 3)
    assert json.loads(str(loaded)) == config.config


def test_seeded_generator_is_reproducible():
    config = ObfuscatorConfig()
    config.set(7, "random", "seed")
    assert config.create_rng().integers(1 << 30) == config.create_rng().integers(1 << 30)


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        ObfuscatorConfig("/nonexistent/config.json")
