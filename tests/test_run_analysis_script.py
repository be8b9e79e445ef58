"""
Tests for scripts/run_analysis.py
=================================
"""

import argparse
import importlib.util
import json
from pathlib import Path

import pytest


SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "run_analysis.py"


def load_script():
    spec = importlib.util.spec_from_file_location("run_analysis_script", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture(scope="module")
def script():
    return load_script()


def make_args(target, agents, **overrides):
    values = dict(
        target=str(target),
        agent=agents,
        only=None,
        capability=None,
        critical=None,
        timeout=0,
        history=False,
        json=True,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


class TestParseAgentSpec:

    @pytest.mark.unit
    def test_named_spec(self, script):
        assert script.parse_agent_spec("quality=pkg.agents:QualityAgent") == ("quality", "pkg.agents", "QualityAgent")

    @pytest.mark.unit
    def test_name_defaults_to_attribute(self, script):
        assert script.parse_agent_spec("pkg.agents:QualityAgent") == ("QualityAgent", "pkg.agents", "QualityAgent")

    @pytest.mark.unit
    @pytest.mark.parametrize("spec", ["pkg.agents", "name=pkg.agents", "pkg:", ":Agent"])
    def test_invalid_specs(self, script, spec):
        with pytest.raises(ValueError):
            script.parse_agent_spec(spec)

    @pytest.mark.unit
    def test_load_factory_rejects_non_callable(self, script):
        with pytest.raises(ValueError):
            script.load_factory("json", "__doc__")


class TestRun:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_json_report(self, script, tmp_path, capsys):
        code = await script.run(make_args(tmp_path, ["stub=agent_stubs:StubAgent"]))

        report = json.loads(capsys.readouterr().out)
        assert code == 0
        assert report["summary"]["status"] == "healthy"
        assert list(report["results"]) == ["stub"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unloadable_agent(self, script, tmp_path, capsys):
        code = await script.run(make_args(tmp_path, ["missing_module_xyz:Agent"]))

        assert code == 2
        assert "Could not load agent" in capsys.readouterr().err

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_agent_cannot_be_planned(self, script, tmp_path, capsys):
        code = await script.run(make_args(tmp_path, ["stub=agent_stubs:StubAgent"], only=["ghost"]))

        assert code == 2
        assert "could not be planned" in capsys.readouterr().err
