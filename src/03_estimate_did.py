# src/03_estimate_did.py
# 2x2 difference-in-differences: one election cohort vs never-treated villages.
# Outputs:
#   data_final/did_summary.txt   (main cohort, statsmodels summary)
#   data_final/did_table.csv     (2x2 means for the main cohort)
#   data_final/did_by_cohort.csv
#   data_final/did_by_cohort.png
import sys
import traceback
from pathlib import Path

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
import matplotlib.pyplot as plt

from panel_utils import OUT, load_panel, cohort_subset, coef_row, save_summary

MAIN_COHORT = 2008
DID_WINDOW  = 4       # years before / from the election year
DID_TERM    = "treated:post_period"


def did_table(df: pd.DataFrame, outcome: str = "output") -> pd.DataFrame:
    """2x2 table of mean outcome (rows: treated 0/1, cols: post_period 0/1)
    with the DiD estimate in `attrs["did"]`."""
    tab = df.pivot_table(index="treated", columns="post_period", values=outcome, aggfunc="mean")
    if tab.shape != (2, 2):
        raise ValueError(f"DiD table needs all four treated x period cells, got:\n{tab}")
    tab["diff"] = tab[1] - tab[0]
    tab.attrs["did"] = float(tab.loc[1, "diff"] - tab.loc[0, "diff"])
    return tab


def fit_did(df: pd.DataFrame, outcome: str = "output", cluster_col: str = "village"):
    """outcome ~ treated * post_period, village-clustered s.e."""
    d = df.dropna(subset=[outcome]).copy()
    formula = f"{outcome} ~ treated + post_period + treated:post_period"
    print("Formula:\n ", formula)
    return smf.ols(formula, data=d).fit(
        cov_type="cluster",
        cov_kwds={"groups": d[cluster_col]}
    )


def eligible_cohorts(df: pd.DataFrame, window: int, lo: int, hi: int) -> list:
    """Cohorts with `window` years of support on both sides inside [lo, hi]."""
    cohorts = sorted(c for c in df.loc[df["treated"] == 1, "cohort"].unique())
    return [int(c) for c in cohorts if c - window >= lo and c + window - 1 <= hi]


def did_by_cohort(df: pd.DataFrame, window: int = DID_WINDOW, outcome: str = "output") -> pd.DataFrame:
    rows = []
    for c in eligible_cohorts(df, window, int(df["year"].min()), int(df["year"].max())):
        sub = cohort_subset(df, c, window)
        model = fit_did(sub, outcome)
        row = coef_row(f"cohort{c}:{outcome}", DID_TERM, model)
        row["cohort"] = c
        row["n_treated_villages"] = int(sub.loc[sub["treated"] == 1, "village"].nunique())
        rows.append(row)
    if not rows:
        raise ValueError(f"No cohort has {window} years of support on both sides.")
    return pd.DataFrame(rows)


def plot_did_by_cohort(res: pd.DataFrame, path: Path):
    plt.figure(figsize=(8, 5))
    plt.axhline(0, color="gray", lw=1)
    plt.bar(res["cohort"].astype(str), res["coef"], yerr=1.96 * res["se"],
            color="steelblue", capsize=5)
    plt.title("Difference-in-Differences effect by election cohort")
    plt.xlabel("Year of first female leader")
    plt.ylabel("Effect on gross output")
    plt.grid(axis="y", alpha=0.3)
    plt.tight_layout()
    plt.savefig(path, dpi=300)
    plt.close()
    print("✅ Saved plot:", path)


def main(out_dir: Path = OUT, cohort: int = MAIN_COHORT, window: int = DID_WINDOW):
    out_dir = Path(out_dir)
    print("➡️ Loading village panel...")
    df = load_panel(out_dir)

    # ======================
    # 1. Main cohort 2x2
    # ======================
    print(f"➡️ DiD for cohort {cohort} vs never treated (window {window})...")
    sub = cohort_subset(df, cohort, window)
    tab = did_table(sub)
    print(tab.round(3).to_string())
    print(f"   DiD from means: {tab.attrs['did']:.3f}")
    tab.to_csv(out_dir / "did_table.csv")

    model = fit_did(sub)
    save_summary(model, out_dir / "did_summary.txt")
    theta, se = model.params[DID_TERM], model.bse[DID_TERM]
    print(f"✅ DiD effect θ = {theta:.3f} (s.e. = {se:.3f})")
    if not np.isclose(theta, tab.attrs["did"]):
        print("⚠️ Regression DiD differs from the means table (unbalanced cells?).")

    # ======================
    # 2. Every cohort with full window support
    # ======================
    print("➡️ DiD by cohort...")
    res = did_by_cohort(df, window)
    print(res[["cohort", "coef", "se", "p", "N"]].to_string(index=False))
    res.to_csv(out_dir / "did_by_cohort.csv", index=False)
    print("✅ Saved:", out_dir / "did_by_cohort.csv")
    plot_did_by_cohort(res, out_dir / "did_by_cohort.png")


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print("❌ Error:", e)
        traceback.print_exc()
        sys.exit(1)
