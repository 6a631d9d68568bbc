import subprocess
from pathlib import Path

import pytest

from stages.dummy import placeholder_with_constraints
from zk.artifacts import ConstraintSystem
from zk.backend import ExternalToolBackend, ReferenceBackend, create_backend
from zk.curves import Curve
from zk.errors import CircuitCompilationError, TrustedSetupError


@pytest.fixture
def circuit():
    return placeholder_with_constraints(10, Curve.BLS12_377, nb_public=2)


def test_reference_compile_rejects_other_curve(circuit):
    with pytest.raises(CircuitCompilationError):
        ReferenceBackend().compile(Curve.BN254, circuit)


def test_reference_setup_produces_bound_keys(circuit):
    backend = ReferenceBackend(setup_seed="seed")
    ccs = backend.compile(Curve.BLS12_377, circuit)
    pk, vk = backend.setup(ccs)

    modulus = Curve.BLS12_377.params.base_modulus
    assert vk.nb_public == 2
    assert all(0 <= value < modulus for value in vk.elements())
    assert vk.ccs_digest == ccs.digest() == pk.ccs_digest
    assert pk.nb_constraints == ccs.nb_constraints == 12


def test_seeded_setup_is_reproducible(circuit):
    ccs = ReferenceBackend().compile(Curve.BLS12_377, circuit)
    first = ReferenceBackend(setup_seed="seed").setup(ccs)
    second = ReferenceBackend(setup_seed="seed").setup(ccs)
    fresh = ReferenceBackend().setup(ccs)

    assert first[1].serialize() == second[1].serialize()
    assert fresh[1].serialize() != first[1].serialize()


def test_setup_rejects_empty_constraint_system():
    ccs = ConstraintSystem(Curve.BN254, "empty", 0, 0, 0, {})
    with pytest.raises(TrustedSetupError):
        ReferenceBackend().setup(ccs)


def _arg(cmd, flag):
    return Path(cmd[cmd.index(flag) + 1])


def test_external_compile_reads_tool_output(monkeypatch, circuit):
    expected = ReferenceBackend().compile(Curve.BLS12_377, circuit)
    calls = []

    def fake_run(cmd, capture_output, text, timeout):
        calls.append(cmd)
        assert _arg(cmd, "--circuit").is_file()
        _arg(cmd, "--out").write_bytes(expected.serialize())
        return subprocess.CompletedProcess(cmd, 0, "compiled", "")

    monkeypatch.setattr(subprocess, "run", fake_run)
    ccs = ExternalToolBackend("circuit-tool").compile(Curve.BLS12_377, circuit)

    assert ccs == expected
    assert calls[0][:2] == ["circuit-tool", "compile"]
    assert "bls12_377" in calls[0]


def test_external_setup_reads_keys(monkeypatch, circuit):
    reference = ReferenceBackend(setup_seed="tool")
    ccs = reference.compile(Curve.BLS12_377, circuit)
    pk, vk = reference.setup(ccs)

    def fake_run(cmd, capture_output, text, timeout):
        _arg(cmd, "--pk").write_bytes(pk.serialize())
        _arg(cmd, "--vk").write_bytes(vk.serialize())
        return subprocess.CompletedProcess(cmd, 0, "", "")

    monkeypatch.setattr(subprocess, "run", fake_run)
    assert ExternalToolBackend("circuit-tool").setup(ccs) == (pk, vk)


def test_external_failure_carries_stderr(monkeypatch, circuit):
    def fake_run(cmd, capture_output, text, timeout):
        return subprocess.CompletedProcess(cmd, 3, "", "unsatisfiable constraint")

    monkeypatch.setattr(subprocess, "run", fake_run)
    with pytest.raises(CircuitCompilationError, match="unsatisfiable constraint"):
        ExternalToolBackend("circuit-tool").compile(Curve.BLS12_377, circuit)


def test_external_missing_executable(monkeypatch, circuit):
    def fake_run(cmd, capture_output, text, timeout):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(subprocess, "run", fake_run)
    with pytest.raises(CircuitCompilationError, match="executable not found"):
        ExternalToolBackend("no-such-tool").compile(Curve.BLS12_377, circuit)


def test_external_timeout(monkeypatch, circuit):
    ccs = ReferenceBackend().compile(Curve.BLS12_377, circuit)

    def fake_run(cmd, capture_output, text, timeout):
        raise subprocess.TimeoutExpired(cmd, timeout)

    monkeypatch.setattr(subprocess, "run", fake_run)
    with pytest.raises(TrustedSetupError, match="timed out"):
        ExternalToolBackend("circuit-tool", timeout=5).setup(ccs)


def test_create_backend():
    assert isinstance(create_backend("reference"), ReferenceBackend)
    assert isinstance(create_backend("external", executable="tool"), ExternalToolBackend)
    with pytest.raises(ValueError):
        create_backend("gnark")
    with pytest.raises(ValueError):
        create_backend("external")
