from pathlib import Path

import pytest

from config.config import PipelineConfig, StoreConfig, load_config, save_config


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(tmp_path / "absent.yaml")
    assert config.votes_per_batch == 10
    assert config.ballot_vkey == "ballotproof/ballot_proof_vkey.json"
    assert config.store.naming == "content"
    assert config.backend.kind == "reference"
    assert config.stage_dir("aggregator") == Path("artifacts") / "aggregator"


def test_save_then_load(tmp_path):
    config = PipelineConfig(
        votes_per_batch=6,
        ballot_vkey="https://example.org/vkey.json",
        ballot_vkey_sha256="AB" * 32,
        store=StoreConfig(artifacts_dir=tmp_path / "out", naming="logical",
                          base_url="https://cdn.example.org"),
    )
    path = tmp_path / "config.yaml"
    save_config(config, path)

    loaded = load_config(path)
    assert loaded.votes_per_batch == 6
    assert loaded.ballot_vkey_sha256 == "ab" * 32
    assert loaded.store.artifacts_dir == tmp_path / "out"
    assert loaded.store.naming == "logical"
    assert loaded.store.base_url == "https://cdn.example.org"


def test_partial_file_keeps_other_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("votes_per_batch: 3\nbackend:\n  kind: external\n  executable: /opt/tool\n")

    config = load_config(path)
    assert config.votes_per_batch == 3
    assert config.backend.kind == "external"
    assert config.backend.executable == "/opt/tool"
    assert config.backend.timeout == 3600


@pytest.mark.parametrize("content", [
    "votes_per_batch: 0\n",
    "store:\n  naming: sometimes\n",
    "- just\n- a list\n",
    "votes_per_batch: [unclosed\n",
])
def test_invalid_file_is_an_error(tmp_path, content):
    path = tmp_path / "config.yaml"
    path.write_text(content)
    with pytest.raises(ValueError, match="Invalid config file"):
        load_config(path)


def test_ensure_directories_creates_stage_dirs(tmp_path):
    config = PipelineConfig(
        store=StoreConfig(artifacts_dir=tmp_path / "artifacts"),
        log_dir=tmp_path / "logs",
        results_dir=tmp_path / "results",
    )
    config.ensure_directories()
    for stage in ("voteverifier", "dummy", "aggregator", "statetransition"):
        assert (tmp_path / "artifacts" / stage).is_dir()
    assert (tmp_path / "logs").is_dir()
