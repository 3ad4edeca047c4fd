# src/04_estimate_panel_fe.py
# -------------------------------------------------------------------
# Two-way fixed-effects panel regression:
#   output_it = a_i + g_t + theta * treat_post_it + e_it
# - Village + year FE as dummies (main) and via two-way demeaning
# - Village-clustered SEs throughout
# Outputs:
#   data_final/panel_fe_summary.txt
#   data_final/panel_fe_summary.csv
# -------------------------------------------------------------------
import sys
import traceback
from pathlib import Path

import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf

from panel_utils import (
    OUT, load_panel, drop_always_treated, never_vs_ever,
    twoway_demean, coef_row, save_summary,
)

LAST_COHORT = 2011
TERM = "treat_post"


def fit_twfe(df: pd.DataFrame, outcome: str = "output", controls: list = None,
             cluster_col: str = "village", year_fe: bool = True):
    d = df.dropna(subset=[outcome]).copy()
    rhs = [TERM] + list(controls or []) + ["C(village)"]
    if year_fe:
        rhs.append("C(year)")
    formula = f"{outcome} ~ " + " + ".join(rhs)
    print("Formula:\n ", formula)
    return smf.ols(formula, data=d).fit(
        cov_type="cluster",
        cov_kwds={"groups": d[cluster_col]}
    )


def fit_twfe_absorbed(df: pd.DataFrame, outcome: str = "output", cluster_col: str = "village"):
    """Same regression with village and year effects absorbed by demeaning.
    Keeps DataFrames so the coefficient is still named `treat_post`."""
    d = df.dropna(subset=[outcome]).copy()
    dm = twoway_demean(d, cols=[outcome, TERM], fe1="village", fe2="year")
    return sm.OLS(dm[outcome], dm[[TERM]], hasconst=False).fit(
        cov_type="cluster",
        cov_kwds={"groups": d[cluster_col]}
    )


def run_specs(df: pd.DataFrame) -> tuple:
    """Fit every TWFE specification; returns (results table, main model)."""
    df = never_vs_ever(df)
    rows = []

    main_model = fit_twfe(df, "output")
    rows.append(coef_row("twfe:output", TERM, main_model))

    rows.append(coef_row("twfe:log_output", TERM, fit_twfe(df, "log_output")))

    d_noalways = drop_always_treated(df)
    rows.append(coef_row("twfe:no_always_treated", TERM, fit_twfe(d_noalways, "output")))

    d_early = df[df["cohort"] <= LAST_COHORT].copy()
    rows.append(coef_row(f"twfe:pre{LAST_COHORT + 1}_cohorts", TERM, fit_twfe(d_early, "output")))

    rows.append(coef_row("absorbed:output", TERM, fit_twfe_absorbed(df, "output")))

    rows.append(coef_row("village_fe_only:output", TERM, fit_twfe(df, "output", year_fe=False)))

    res = pd.DataFrame(rows, columns=["spec", "term", "coef", "se", "p", "N", "R2"])
    return res, main_model


def main(out_dir: Path = OUT):
    out_dir = Path(out_dir)
    print("➡️ Loading village panel...")
    df = load_panel(out_dir)
    print("Rows x Cols:", df.shape)

    print("➡️ Estimating two-way fixed-effects specifications...")
    res, main_model = run_specs(df)
    save_summary(main_model, out_dir / "panel_fe_summary.txt")

    print("\n================ PANEL FE SUMMARY ================\n")
    print(res.to_string(index=False))
    out = out_dir / "panel_fe_summary.csv"
    res.to_csv(out, index=False)
    print(f"\n✅ Saved: {out.resolve()}")


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print("❌ Error:", e)
        traceback.print_exc()
        sys.exit(1)
