#!/usr/bin/env python3
"""
Run full experiment demo: create -> start -> simulate -> complete -> report.

Creates artifacts/experiments/<id>/results.json, variants.csv and summary.html.
"""

import logging
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    from src.experimentation import EngineConfig, ExperimentEngine, LifecycleEvent
    from src.experimentation.report import export_results, render_results_summary
    from src.experimentation.simulate import run_simulation

    experiment_id = "demo_hero_cta"
    data_dir = ROOT / "data" / "experiments"
    artifacts_dir = ROOT / "artifacts" / "experiments"

    engine = ExperimentEngine(EngineConfig(data_dir=str(data_dir), artifacts_dir=str(artifacts_dir)))
    if experiment_id in {e.id for e in engine.list_experiments()}:
        print(f"Experiment {experiment_id} already exists in {data_dir}; remove it to rerun.")
        sys.exit(1)

    print("1. Creating experiment...")
    engine.create_experiment({
        "id": experiment_id,
        "name": "Hero Section CTA Button",
        "description": "Testing different call-to-action button styles in the hero section",
        "component": "HeroSection",
        "target_metric": "click_through_rate",
        "variants": [
            {"id": "variant_control", "name": "Original Button", "is_control": True},
            {"id": "variant_orange", "name": "Orange Button"},
            {"id": "variant_outline", "name": "Outline Button"},
        ],
    })

    print("2. Starting and simulating traffic...")
    engine.transition(experiment_id, LifecycleEvent.START)
    summary = run_simulation(
        engine,
        experiment_id,
        conversion_rates={"variant_control": 0.045, "variant_orange": 0.062, "variant_outline": 0.047},
        n_visitors=20000,
    )
    print(f"   Assigned: {summary['assigned']}")

    print("3. Completing and reporting...")
    engine.transition(experiment_id, LifecycleEvent.COMPLETE)
    results = engine.get_results(experiment_id)
    out_dir = export_results(results, artifacts_dir=str(artifacts_dir))
    render_results_summary(results.to_dict(), experiment_id, artifacts_dir=str(artifacts_dir))

    print(f"   Significance: {results.significance:.3f}, winner: {results.winner}")
    print(f"\n[OK] Demo complete. Artifacts in {out_dir}:")
    for f in sorted(out_dir.iterdir()):
        print(f"   - {f.name}")


if __name__ == "__main__":
    main()
