"""Tests for the 2x2 difference-in-differences stage."""

import importlib

import pandas as pd
import pytest

from conftest import TAU, make_village_panel
from panel_utils import cohort_subset

did = importlib.import_module("03_estimate_did")


@pytest.fixture
def sub(raw_panel):
    return cohort_subset(raw_panel, 2008, window=4)


def test_did_table_matches_regression(sub):
    tab = did.did_table(sub)
    model = did.fit_did(sub)
    assert tab.shape == (2, 3)
    assert model.params[did.DID_TERM] == pytest.approx(tab.attrs["did"])


def test_did_recovers_effect(sub):
    model = did.fit_did(sub)
    assert model.params[did.DID_TERM] == pytest.approx(TAU, abs=1.0)
    assert model.bse[did.DID_TERM] > 0
    assert model.nobs == len(sub)


def test_did_exact_without_noise():
    sub = cohort_subset(make_village_panel(noise=0.0), 2005, window=4)
    assert did.did_table(sub).attrs["did"] == pytest.approx(TAU)


def test_did_table_needs_four_cells(sub):
    with pytest.raises(ValueError, match="four"):
        did.did_table(sub[sub["post_period"] == 0])


def test_eligible_cohorts(panel):
    assert did.eligible_cohorts(panel, 4, 2001, 2015) == [2005, 2008, 2011]
    assert did.eligible_cohorts(panel, 5, 2001, 2015) == [2008, 2011]


def test_did_by_cohort(panel):
    res = did.did_by_cohort(panel, window=4)
    assert list(res["cohort"]) == [2005, 2008, 2011]
    assert (res["n_treated_villages"] == 6).all()
    assert res["coef"].between(TAU - 1.5, TAU + 1.5).all()


def test_did_by_cohort_without_support(panel):
    with pytest.raises(ValueError, match="support"):
        did.did_by_cohort(panel, window=8)


def test_main_writes_outputs(panel_dir):
    did.main(panel_dir)
    for name in ["did_summary.txt", "did_table.csv", "did_by_cohort.csv", "did_by_cohort.png"]:
        assert (panel_dir / name).exists(), name
    assert len(pd.read_csv(panel_dir / "did_by_cohort.csv")) == 3
