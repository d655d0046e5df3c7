"""Tests for the package version attribute."""

import re
from pathlib import Path

import tomllib

import phabricator_mirror

PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


class TestVersionAttribute:
    def test_version_format(self):
        """__version__ matches the X.Y.Z pattern."""
        assert re.match(r"^\d+\.\d+\.\d+$", phabricator_mirror.__version__)

    def test_matches_pyproject(self):
        with open(PYPROJECT, "rb") as fh:
            project = tomllib.load(fh)["project"]
        assert project["version"] == phabricator_mirror.__version__
