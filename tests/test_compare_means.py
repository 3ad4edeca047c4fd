import importlib

import numpy as np
import pandas as pd
import pytest

from conftest import TAU

means = importlib.import_module("02_compare_means")


def test_group_means(panel):
    g = means.group_means(panel, "treated")
    assert list(g["treated"]) == [0, 1]
    assert g["count"].sum() == len(panel)
    assert np.allclose(g["se"], g["std"] / np.sqrt(g["count"]))


def test_compare_means_sign_and_counts(panel):
    tr = (panel["treated"] == 1)
    res = means.compare_means(panel, tr & (panel["post"] == 1), tr & (panel["post"] == 0),
                              "post vs pre")
    assert res["diff"] == pytest.approx(res["mean_a"] - res["mean_b"])
    # effect plus the common trend: well above zero
    assert res["diff"] > TAU
    assert res["p"] < 0.01
    assert res["n_a"] + res["n_b"] == int(tr.sum())


def test_compare_means_needs_two_obs(panel):
    none = panel["year"] == 1990
    with pytest.raises(ValueError, match="at least 2"):
        means.compare_means(panel, none, panel["treated"] == 0, "empty")


def test_run_comparisons(panel):
    res = means.run_comparisons(panel)
    assert len(res) == 6
    assert set(res["outcome"]) == {"output", "log_output"}


def test_yearly_means(panel):
    ym = means.yearly_means(panel)
    assert list(ym.columns) == ["year", "never_treated", "ever_treated"]
    assert len(ym) == 15


def test_event_time_means_zero_at_reference(panel):
    em = means.event_time_means(panel)
    assert em.loc[em["k"] == -1, "gap"].iat[0] == pytest.approx(0.0)
    # the jump from k=-1 to k>=0 is roughly the treatment effect
    assert em.loc[em["k"] == 2, "gap"].iat[0] == pytest.approx(TAU, abs=3.0)


def test_main_writes_outputs(panel_dir):
    means.main(panel_dir)
    for name in ["mean_comparisons.csv", "yearly_means.csv", "raw_trends.png",
                 "cohort_trends.png", "event_time_means.png"]:
        assert (panel_dir / name).exists(), name
    assert len(pd.read_csv(panel_dir / "mean_comparisons.csv")) == 6
