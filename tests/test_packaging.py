import pathlib

import pytest

tomllib = pytest.importorskip("tomllib")

ROOT = pathlib.Path(__file__).resolve().parent.parent


def test_pyproject_installs_every_module_without_a_requirements_readme():
    data = tomllib.loads((ROOT / "pyproject.toml").read_text())
    assert "readme" not in data["project"]
    modules = data["tool"]["setuptools"]["py-modules"]
    assert sorted(modules) == sorted(path.stem for path in ROOT.glob("*.py"))
    assert data["project"]["scripts"]["ssat"] == "ssat:main"
