"""End-to-end: create -> start -> simulate -> complete -> export produces non-empty artifacts."""
import json

import pandas as pd
import pytest
from src.experimentation import EngineConfig, ExperimentEngine, ExperimentStore
from src.experimentation.report import export_results, render_results_summary
from src.experimentation.simulate import run_simulation


@pytest.fixture
def temp_dirs(tmp_path):
    """Separate data and artifacts directories."""
    data_dir = tmp_path / "data" / "experiments"
    artifacts_dir = tmp_path / "artifacts" / "experiments"
    return data_dir, artifacts_dir


def test_e2e_simulate_report(temp_dirs):
    """Simulated traffic -> results -> artifacts exist and agree with the store."""
    data_dir, artifacts_dir = temp_dirs
    engine = ExperimentEngine(EngineConfig(data_dir=str(data_dir), artifacts_dir=str(artifacts_dir)))
    exp_id = "e2e_test"
    engine.create_experiment({
        "id": exp_id,
        "name": "E2E CTA",
        "component": "HeroSection",
        "variants": [{"name": "Control"}, {"name": "Orange"}],
    })
    engine.transition(exp_id, "start")

    summary = run_simulation(
        engine, exp_id, conversion_rates={"variant_1": 0.05, "variant_2": 0.12}, n_visitors=3000
    )
    assert summary["unassigned"] == 0
    assert sum(summary["assigned"].values()) == 3000

    engine.transition(exp_id, "complete")
    results = engine.get_results(exp_id)
    assert results.winner == "variant_2"
    assert results.srm_passed

    out_dir = export_results(results, artifacts_dir=str(artifacts_dir))
    render_results_summary(results.to_dict(), exp_id, artifacts_dir=str(artifacts_dir))

    assert (out_dir / "results.json").exists()
    assert (out_dir / "summary.html").read_text().strip()
    frame = pd.read_csv(out_dir / "variants.csv")
    assert list(frame["variant_id"]) == ["variant_1", "variant_2"]
    assert frame["exposures"].sum() == 3000

    with open(out_dir / "results.json") as f:
        payload = json.load(f)
    assert payload["experiment_id"] == exp_id
    assert payload["recommended_action"] == "implement"

    # the record on disk reloads with the same counters
    reloaded = ExperimentEngine(store=ExperimentStore(str(data_dir)))
    counts = [(v.exposures, v.conversions) for v in reloaded.get_experiment(exp_id).variants]
    assert counts == [(v.exposures, v.conversions) for v in engine.get_experiment(exp_id).variants]
