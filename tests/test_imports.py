"""Every entry point imports cleanly in a fresh interpreter."""

import os
import subprocess
import sys
from pathlib import Path

import pytest

SRC = Path(__file__).resolve().parents[1] / "src"


@pytest.mark.parametrize(
    "module",
    [
        "knowledge_garden.api.app",
        "knowledge_garden.providers",
        "knowledge_garden.deps",
        "knowledge_garden.services.exceptions",
        "knowledge_garden.sync",
        "knowledge_garden.cli.main",
    ],
)
def test_module_imports_first(module):
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC), env.get("PYTHONPATH")]))
    result = subprocess.run(
        [sys.executable, "-c", f"import {module}"], capture_output=True, text=True, env=env
    )
    assert result.returncode == 0, result.stderr
