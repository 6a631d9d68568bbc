import json
from pathlib import Path

import pytest

from config.config import BackendConfig, PipelineConfig, StoreConfig
from pipeline.driver import PipelineDriver, RunContext
from zk.artifacts import VerifyingKey
from zk.backend import ReferenceBackend
from zk.curves import Curve

SAMPLE_BALLOT_VKEY = {
    "protocol": "groth16",
    "curve": "bn128",
    "nPublic": 2,
    "vk_alpha_1": ["1", "2", "1"],
    "vk_beta_2": [["3", "4"], ["5", "6"], ["1", "0"]],
    "vk_gamma_2": [["7", "8"], ["9", "10"], ["1", "0"]],
    "vk_delta_2": [["11", "12"], ["13", "14"], ["1", "0"]],
    "IC": [
        ["15", "16", "1"],
        ["17", "18", "1"],
        ["19", "20", "1"],
    ],
}


@pytest.fixture
def ballot_vkey_dict():
    return json.loads(json.dumps(SAMPLE_BALLOT_VKEY))


@pytest.fixture
def ballot_vkey_file(tmp_path, ballot_vkey_dict) -> Path:
    path = tmp_path / "ballotproof" / "ballot_proof_vkey.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps(ballot_vkey_dict, indent=2))
    return path


@pytest.fixture
def backend():
    return ReferenceBackend(setup_seed="test-seed")


@pytest.fixture
def pipeline_config(tmp_path, ballot_vkey_file) -> PipelineConfig:
    return PipelineConfig(
        votes_per_batch=4,
        ballot_vkey=str(ballot_vkey_file),
        store=StoreConfig(artifacts_dir=tmp_path / "artifacts"),
        backend=BackendConfig(setup_seed="test-seed"),
        log_dir=tmp_path / "logs",
        results_dir=tmp_path / "results",
        enable_benchmarking=False,
    )


@pytest.fixture
def driver(pipeline_config, backend) -> PipelineDriver:
    return PipelineDriver(RunContext(config=pipeline_config, backend=backend))


@pytest.fixture
def vk_factory():
    """Build a structurally valid verifying key with small coordinates"""
    def make(curve: Curve, nb_public: int = 1, start: int = 1) -> VerifyingKey:
        params = curve.params
        counter = iter(range(start, start + 1000))

        def point(n):
            return tuple(next(counter) for _ in range(n))

        return VerifyingKey(
            curve=curve,
            alpha_g1=point(params.g1_coordinates),
            beta_g2=point(params.g2_coordinates),
            gamma_g2=point(params.g2_coordinates),
            delta_g2=point(params.g2_coordinates),
            k=tuple(point(params.g1_coordinates) for _ in range(nb_public + 1)),
        )

    return make
