import hashlib
import json
import shutil

import pytest
import requests

from pipeline.driver import (
    CancellationToken,
    PipelineDriver,
    RunContext,
    StageState,
    fetch_ballot_vkey,
)
from stages.circuits import compile_and_setup
from stages.dummy import placeholder_with_constraints
from store.artifact_store import ArtifactStore
from zk.backend import ReferenceBackend
from zk.errors import ArtifactIntegrityError, PrerequisiteMissingError, StorageError

STAGES = ["voteverifier", "dummy", "aggregator", "statetransition"]


def _files(directory, suffix):
    return sorted(p for p in directory.iterdir() if p.suffix == suffix)


def test_generate_all_persists_every_stage(driver, pipeline_config):
    results = driver.generate_all()

    assert [r.stage for r in results] == STAGES
    assert all(r.ok for r in results)

    for stage in STAGES:
        directory = pipeline_config.stage_dir(stage)
        for suffix in (".ccs", ".pk", ".vk"):
            assert len(_files(directory, suffix)) == 1

        lines = (directory / f"{stage}_hashes.txt").read_text().splitlines()
        assert len(lines) == 3
        for line in lines:
            name, digest = line.split()
            content = (directory / name).read_bytes()
            assert hashlib.sha256(content).hexdigest() == digest
            assert name == f"{digest}{(directory / name).suffix}"

    assert set(driver.status().values()) == {StageState.PERSISTED}
    assert all(report.ok for report in driver.verify())


def test_stage_manifest_records_upstream_digests(driver, pipeline_config):
    vv = driver.generate_voteverifier_artifacts()
    driver.generate_dummy_artifacts()
    driver.generate_aggregator_artifacts()

    manifest = json.loads(
        (pipeline_config.stage_dir("aggregator") / "aggregator_manifest.json").read_text())
    assert manifest["curve"] == "bw6_761"
    assert manifest["parameters"]["votes_per_batch"] == 4
    vv_vk_name = next(name for name in vv.digests if name.endswith(".vk"))
    assert manifest["parameters"]["inputs"]["voteverifier.vk"] == vv.digests[vv_vk_name]


def test_compile_is_reproducible_across_runs(tmp_path, pipeline_config):
    digests = []
    for run in ("first", "second"):
        pipeline_config.store.artifacts_dir = tmp_path / run
        driver = PipelineDriver(RunContext(config=pipeline_config, backend=ReferenceBackend()))
        result = driver.generate_voteverifier_artifacts()
        digests.append(next(d for name, d in result.digests.items() if name.endswith(".ccs")))
    assert digests[0] == digests[1]


def test_aggregator_without_vote_verifier_writes_nothing(driver, pipeline_config):
    driver.generate_voteverifier_artifacts()
    driver.generate_dummy_artifacts()

    vv_dir = pipeline_config.stage_dir("voteverifier")
    shutil.rmtree(vv_dir)
    vv_dir.mkdir()
    aggregator_dir = pipeline_config.stage_dir("aggregator")

    with pytest.raises(PrerequisiteMissingError,
                       match="not found.*Please generate Vote Verifier artifacts first"):
        driver.generate_aggregator_artifacts()

    assert driver.last_result.state is StageState.ARTIFACTS_MISSING
    assert not aggregator_dir.exists() or list(aggregator_dir.iterdir()) == []


def test_dummy_before_vote_verifier_fails(driver, pipeline_config):
    with pytest.raises(PrerequisiteMissingError) as excinfo:
        driver.generate_dummy_artifacts()
    assert excinfo.value.stage == "dummy"
    assert not pipeline_config.stage_dir("dummy").exists()


def test_generate_all_stops_at_first_failure(driver, pipeline_config, tmp_path):
    results = driver.generate_all(ballot_vkey=tmp_path / "nowhere.json")

    assert len(results) == 1
    assert results[0].stage == "voteverifier"
    assert not results[0].ok
    assert "does not exist" in results[0].error
    for stage in STAGES:
        assert not pipeline_config.stage_dir(stage).exists()


def test_tampered_upstream_artifact_blocks_next_stage(driver, pipeline_config):
    driver.generate_voteverifier_artifacts()
    driver.generate_dummy_artifacts()

    vk_file = _files(pipeline_config.stage_dir("voteverifier"), ".vk")[0]
    data = vk_file.read_bytes()
    vk_file.write_bytes(data[:-1] + bytes([data[-1] ^ 0xFF]))

    with pytest.raises(ArtifactIntegrityError):
        driver.generate_aggregator_artifacts()
    assert driver.status()["voteverifier"] is StageState.PERSISTED
    assert not driver.verify(["voteverifier"])[0].ok


@pytest.mark.parametrize("naming", ["content", "logical"])
def test_interrupted_persist_blocks_next_stage(driver, pipeline_config, ballot_vkey_file,
                                               ballot_vkey_dict, monkeypatch, naming):
    pipeline_config.store.naming = naming
    driver.generate_voteverifier_artifacts()
    driver.generate_dummy_artifacts()

    # regenerate with a different ballot key, dying before the vk is written
    ballot_vkey_dict["vk_alpha_1"] = ["21", "22", "1"]
    ballot_vkey_file.write_text(json.dumps(ballot_vkey_dict))
    original_put = ArtifactStore.put

    def put_without_vk(self, data, kind):
        if kind == "vk":
            raise StorageError("disk full", path=self.directory)
        return original_put(self, data, kind)

    monkeypatch.setattr(ArtifactStore, "put", put_without_vk)
    with pytest.raises(StorageError):
        driver.generate_voteverifier_artifacts()
    monkeypatch.undo()

    vv_dir = pipeline_config.stage_dir("voteverifier")
    assert _files(vv_dir, ".vk")
    assert driver.status()["voteverifier"] is StageState.ARTIFACTS_MISSING

    with pytest.raises(PrerequisiteMissingError,
                       match="incomplete.*Please generate Vote Verifier artifacts first"):
        driver.generate_aggregator_artifacts()
    assert driver.last_result.state is StageState.ARTIFACTS_MISSING
    aggregator_dir = pipeline_config.stage_dir("aggregator")
    assert not aggregator_dir.exists() or list(aggregator_dir.iterdir()) == []


def test_unmanaged_stage_directory_with_foreign_vk_is_rejected(driver, pipeline_config, backend):
    pipeline_config.store.naming = "logical"
    driver.generate_voteverifier_artifacts()
    driver.generate_dummy_artifacts()

    # hand-copied layout: no hash log, no manifest, vk from another setup
    vv_dir = pipeline_config.stage_dir("voteverifier")
    (vv_dir / "voteverifier_manifest.json").unlink()
    (vv_dir / "voteverifier_hashes.txt").unlink()
    foreign = compile_and_setup(backend, placeholder_with_constraints(5, nb_public=1))
    (vv_dir / "voteverifier.vk").write_bytes(foreign.vk.serialize())

    with pytest.raises(PrerequisiteMissingError, match="voteverifier.vk does not belong"):
        driver.generate_aggregator_artifacts()


def test_unmanaged_stage_directory_with_matching_files_is_accepted(driver, pipeline_config):
    pipeline_config.store.naming = "logical"
    driver.generate_voteverifier_artifacts()
    driver.generate_dummy_artifacts()

    vv_dir = pipeline_config.stage_dir("voteverifier")
    (vv_dir / "voteverifier_manifest.json").unlink()
    (vv_dir / "voteverifier_hashes.txt").unlink()

    assert driver.generate_aggregator_artifacts().ok


def test_rerun_replaces_previous_artifacts(tmp_path, pipeline_config):
    driver = PipelineDriver(RunContext(config=pipeline_config, backend=ReferenceBackend()))
    first = driver.generate_voteverifier_artifacts()
    second = driver.generate_voteverifier_artifacts()

    directory = pipeline_config.stage_dir("voteverifier")
    assert first.digests != second.digests
    assert len(_files(directory, ".pk")) == 1
    assert len(_files(directory, ".vk")) == 1
    assert driver.verify(["voteverifier"])[0].ok


def test_cancellation_is_honoured_between_stages(pipeline_config, backend):
    token = CancellationToken()
    driver = PipelineDriver(RunContext(config=pipeline_config, backend=backend, token=token))

    original = driver.generate_voteverifier_artifacts

    def generate_then_interrupt(*args, **kwargs):
        result = original(*args, **kwargs)
        token.cancel("SIGINT")
        return result

    driver.generate_voteverifier_artifacts = generate_then_interrupt
    results = driver.generate_all()

    assert [r.stage for r in results] == ["voteverifier", "dummy"]
    assert results[0].ok
    assert "cancelled" in results[1].error
    assert not pipeline_config.stage_dir("dummy").exists()


def test_status_reports_each_stage(driver):
    assert set(driver.status().values()) == {StageState.NOT_STARTED}
    driver.generate_voteverifier_artifacts()
    states = driver.status()
    assert states["voteverifier"] is StageState.PERSISTED
    assert states["dummy"] is StageState.NOT_STARTED


def test_ballot_vkey_digest_pin(driver, pipeline_config, ballot_vkey_file):
    pipeline_config.ballot_vkey_sha256 = "0" * 64
    with pytest.raises(ArtifactIntegrityError):
        driver.generate_voteverifier_artifacts()

    pipeline_config.ballot_vkey_sha256 = hashlib.sha256(ballot_vkey_file.read_bytes()).hexdigest()
    assert driver.generate_voteverifier_artifacts().ok


def test_write_reports(driver, pipeline_config):
    results = driver.generate_all()
    summary_path, report_path = driver.write_reports(results)

    data = json.loads(summary_path.read_text())
    assert [s["stage"] for s in data["data"]["stages"]] == STAGES
    assert data["data"]["stages"][0]["state"] == "Persisted"
    assert "GENERATE_AGGREGATOR" in report_path.read_text()


class FakeResponse:
    def __init__(self, content, status=200):
        self.content = content
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        return self.response


def test_fetch_ballot_vkey_from_url(ballot_vkey_file):
    session = FakeSession(FakeResponse(ballot_vkey_file.read_bytes()))
    data = fetch_ballot_vkey("https://example.org/ballot_proof_vkey.json", session=session)
    assert data == ballot_vkey_file.read_bytes()
    assert session.urls == ["https://example.org/ballot_proof_vkey.json"]


def test_fetch_ballot_vkey_http_error_is_prerequisite_missing():
    session = FakeSession(FakeResponse(b"", status=404))
    with pytest.raises(PrerequisiteMissingError, match="could not fetch"):
        fetch_ballot_vkey("https://example.org/missing.json", session=session)
