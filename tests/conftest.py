# tests/conftest.py
import os
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Put src/ on sys.path so `import panel_utils` and the numbered stages work.
SRC = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(SRC))

# headless plotting
os.environ.setdefault("MPLBACKEND", "Agg")

TAU = 10.0
YEARS = list(range(2001, 2016))


def make_village_panel(tau=TAU, n_never=20, cohorts=(2005, 2008, 2011), per_cohort=6,
                       extra=(1999, 2018), anticipation=0.0, noise=1.0, seed=0):
    """Balanced 2001-2015 village panel with a constant effect `tau` from the
    election year on. `extra` adds one village per listed election year
    (e.g. always treated 1999, out-of-sample 2018)."""
    rng = np.random.default_rng(seed)
    election = [np.nan] * n_never
    for c in cohorts:
        election += [float(c)] * per_cohort
    election += [float(e) for e in extra]

    rows = []
    for i, ffy in enumerate(election):
        alpha = rng.normal(0, 5)
        for t in YEARS:
            y = 100.0 + alpha + 2.0 * (t - 2001) + rng.normal(0, noise)
            if not np.isnan(ffy) and ffy <= 2015:
                if t >= ffy:
                    y += tau
                elif t - ffy in (-3, -2):
                    y += anticipation
            rows.append((f"v{i:03d}", t, y, ffy))
    return pd.DataFrame(rows, columns=["village", "year", "output", "first_female_year"])


@pytest.fixture
def raw_panel():
    return make_village_panel()


@pytest.fixture
def panel(raw_panel):
    from panel_utils import add_treatment_indicators
    return add_treatment_indicators(raw_panel)


@pytest.fixture
def raw_csv(tmp_path, raw_panel):
    """The synthetic panel written with messy, human-style headers."""
    path = tmp_path / "village_panel.csv"
    raw_panel.rename(columns={
        "village": "Village ID",
        "year": "Year",
        "output": "Gross Output",
        "first_female_year": "First Female Year",
    }).to_csv(path, index=False)
    return path


@pytest.fixture
def panel_dir(tmp_path, raw_csv):
    """A data_final-like directory holding the built analysis panel."""
    import importlib
    build = importlib.import_module("01_build_panel")
    out = tmp_path / "data_final"
    build.build_panel(raw_csv, out)
    return out
