"""
Results export and HTML summary.

Writes results.json, variants.csv and summary.html to
artifacts/experiments/<experiment_id>/.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict

import pandas as pd
from jinja2 import Template

from .config import DEFAULT_ARTIFACTS_DIR
from .schema import ExperimentResults

logger = logging.getLogger(__name__)

SUMMARY_TEMPLATE = Template("""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{{ r.experiment_name }} - results</title>
<style>
  body { font-family: sans-serif; margin: 32px; color: #222; }
  table { border-collapse: collapse; }
  th, td { padding: 6px 12px; border-bottom: 1px solid #ddd; text-align: right; }
  th:first-child, td:first-child { text-align: left; }
  .winner { background: #d5f5e3; }
  .action { padding: 12px; border-radius: 6px; background: #ebf5fb; }
</style>
</head>
<body>
<h1>{{ r.experiment_name }}</h1>
<p>Status: <b>{{ r.status }}</b> &middot; {{ r.duration_days }} days &middot;
   Significance: <b>{{ "%.1f"|format(r.significance * 100) }}%</b>
   {% if r.winner %}&middot; Winner: <b>{{ r.winner }}</b>{% endif %}</p>
{% if not r.srm_passed %}<p><b>Sample ratio mismatch detected</b> (p={{ "%.4f"|format(r.srm_p_value) }}).</p>{% endif %}
<table>
  <tr><th>Variant</th><th>Traffic</th><th>Exposures</th><th>Conversions</th>
      <th>Rate</th><th>Lift</th><th>Confidence</th></tr>
  {% for v in r.variants %}
  <tr{% if v.is_winner %} class="winner"{% endif %}>
    <td>{{ v.variant_name }}{% if v.is_control %} (control){% endif %}{% if not v.is_active %} [inactive]{% endif %}</td>
    <td>{{ v.traffic }}%</td>
    <td>{{ v.exposures }}</td>
    <td>{{ v.conversions }}</td>
    <td>{{ "%.2f"|format(v.conversion_rate) }}% [{{ "%.2f"|format(v.ci_low) }}, {{ "%.2f"|format(v.ci_high) }}]</td>
    <td>{% if v.is_control %}-{% else %}{{ "%+.1f"|format(v.lift_pct) }}%{% endif %}</td>
    <td>{% if v.confidence is none %}-{% else %}{{ "%.1f"|format(v.confidence * 100) }}%{% endif %}</td>
  </tr>
  {% endfor %}
</table>
<div class="action">
  <h2>Recommendation: {{ r.recommended_action }}</h2>
  <ul>{% for line in r.recommendations %}<li>{{ line }}</li>{% endfor %}</ul>
</div>
</body>
</html>
""")


def results_frame(results: ExperimentResults) -> pd.DataFrame:
    """Per-variant results as a DataFrame."""
    return pd.DataFrame(results.to_dict()["variants"])


def export_results(
    results: ExperimentResults,
    artifacts_dir: str = DEFAULT_ARTIFACTS_DIR,
) -> Path:
    """
    Write results.json and variants.csv.

    Returns:
        Output directory
    """
    out_dir = Path(artifacts_dir) / results.experiment_id
    out_dir.mkdir(parents=True, exist_ok=True)

    with open(out_dir / "results.json", "w") as f:
        json.dump(results.to_dict(), f, indent=2)
    results_frame(results).to_csv(out_dir / "variants.csv", index=False)

    logger.info(f"Results exported to {out_dir}")
    return out_dir


def render_results_summary(
    results: Dict[str, Any],
    experiment_id: str,
    artifacts_dir: str = DEFAULT_ARTIFACTS_DIR,
) -> Path:
    """
    Render the HTML summary from a results dict (ExperimentResults.to_dict()).

    Returns:
        Path to summary.html
    """
    out_dir = Path(artifacts_dir) / experiment_id
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / "summary.html"
    out_path.write_text(SUMMARY_TEMPLATE.render(r=results))
    logger.info(f"Summary written to {out_path}")
    return out_path
