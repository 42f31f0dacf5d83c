"""Tests for ktree.toml loading."""

from __future__ import annotations

import logging

import pytest

from ktree.config import init_config, load_config
from ktree.engine import KnowledgeTree


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path):
        cfg = load_config(tmp_path)
        assert cfg.root == tmp_path
        assert cfg.name == tmp_path.name
        assert cfg.entries_dir == tmp_path / ".ktree" / "entries"
        assert (cfg.traversal.default_depth, cfg.traversal.max_depth) == (1, 5)
        assert cfg.log.level_no == logging.WARNING

    def test_reads_sections(self, tmp_path):
        (tmp_path / "ktree.toml").write_text(
            '[ktree]\nname = "kb"\nentries_dir = "kb"\n\n'
            "[traversal]\ndefault_depth = 2\nmax_depth = 3\n\n"
            '[logging]\nlevel = "debug"\n'
        )
        cfg = load_config(tmp_path)
        assert cfg.name == "kb"
        assert cfg.entries_dir == tmp_path / "kb"
        assert (cfg.traversal.default_depth, cfg.traversal.max_depth) == (2, 3)
        assert cfg.log.level_no == logging.DEBUG

    def test_max_depth_never_below_default(self, tmp_path):
        (tmp_path / "ktree.toml").write_text("[traversal]\ndefault_depth = 4\nmax_depth = 2\n")
        assert load_config(tmp_path).traversal.max_depth == 4

    def test_rejects_zero_depth(self, tmp_path):
        (tmp_path / "ktree.toml").write_text("[traversal]\ndefault_depth = 0\n")
        with pytest.raises(ValueError):
            load_config(tmp_path)

    def test_env_overrides_log_level(self, tmp_path, monkeypatch):
        monkeypatch.setenv("KTREE_LOG_LEVEL", "ERROR")
        assert load_config(tmp_path).log.level_no == logging.ERROR

    def test_unknown_level_falls_back(self, tmp_path, monkeypatch):
        monkeypatch.setenv("KTREE_LOG_LEVEL", "chatty")
        assert load_config(tmp_path).log.level_no == logging.WARNING

    def test_finds_root_upward(self, tmp_path):
        init_config(tmp_path, name="kb")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert load_config(nested).root == tmp_path


class TestInitConfig:
    def test_writes_loadable_file(self, tmp_path):
        path = init_config(tmp_path, name="kb")
        assert path.exists()
        assert load_config(tmp_path).name == "kb"

    def test_refuses_to_overwrite(self, tmp_path):
        init_config(tmp_path)
        with pytest.raises(FileExistsError):
            init_config(tmp_path)

    def test_tree_from_config(self, tmp_path):
        init_config(tmp_path)
        cfg = load_config(tmp_path)
        tree = KnowledgeTree.from_config(cfg)
        assert tree.store.root == cfg.entries_dir
        assert cfg.entries_dir.is_dir()
        assert tree.max_depth == 5
