"""Checks on the distribution metadata in pyproject.toml."""
import os
import re

PYPROJECT = os.path.join(os.path.dirname(__file__), '..', 'pyproject.toml')


def project_table():
    with open(PYPROJECT, encoding="utf-8") as f:
        text = f.read()
    match = re.search(r"^\[project\]\n(.*?)(?=^\[)", text, re.S | re.M)
    assert match is not None
    return match.group(1)


def test_long_description_is_not_the_design_ledger():
    readme = re.search(r'^readme\s*=\s*"([^"]+)"', project_table(), re.M)

    assert readme is None or readme.group(1) != "DESIGN.md"


def test_declared_readme_exists():
    readme = re.search(r'^readme\s*=\s*"([^"]+)"', project_table(), re.M)

    if readme is not None:
        assert os.path.exists(os.path.join(os.path.dirname(PYPROJECT), readme.group(1)))
