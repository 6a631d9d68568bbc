from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def test_project_readme_is_shipped():
    pyproject = (ROOT / "pyproject.toml").read_text()
    assert 'readme = "README.md"' in pyproject
    assert "vote-circuit-artifacts" in (ROOT / "README.md").read_text()
