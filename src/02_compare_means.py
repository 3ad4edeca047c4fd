# src/02_compare_means.py
# Mean comparisons of gross output and raw pre-trend plots.
# Outputs:
#   data_final/mean_comparisons.csv
#   data_final/yearly_means.csv
#   data_final/raw_trends.png
#   data_final/cohort_trends.png
#   data_final/event_time_means.png
import sys
import traceback
from pathlib import Path

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from statsmodels.stats.weightstats import ttest_ind

from panel_utils import OUT, load_panel, never_vs_ever


def group_means(df: pd.DataFrame, by, outcome: str = "output") -> pd.DataFrame:
    """Mean, sd, count and s.e. of `outcome` per group."""
    g = df.groupby(by)[outcome].agg(["mean", "std", "count"]).reset_index()
    g["se"] = g["std"] / np.sqrt(g["count"])
    return g


def compare_means(df: pd.DataFrame, mask_a, mask_b, label: str, outcome: str = "output") -> dict:
    """Difference in means (a - b) with a Welch two-sample t-test."""
    a = df.loc[mask_a, outcome].dropna()
    b = df.loc[mask_b, outcome].dropna()
    if len(a) < 2 or len(b) < 2:
        raise ValueError(f"[{label}] need at least 2 observations per group (got {len(a)}, {len(b)})")
    t, p, _ = ttest_ind(a, b, usevar="unequal")
    return dict(
        comparison=label,
        outcome=outcome,
        mean_a=float(a.mean()),
        mean_b=float(b.mean()),
        diff=float(a.mean() - b.mean()),
        t=float(t),
        p=float(p),
        n_a=int(len(a)),
        n_b=int(len(b)),
    )


def run_comparisons(df: pd.DataFrame) -> pd.DataFrame:
    rows = []
    tr, never = df["treated"] == 1, df["treated"] == 0
    for outcome in ["output", "log_output"]:
        rows.append(compare_means(df, tr, never, "ever vs never (all years)", outcome))
        rows.append(compare_means(df, tr & (df["post"] == 0), never,
                                  "ever (pre only) vs never", outcome))
        rows.append(compare_means(df, tr & (df["post"] == 1), tr & (df["post"] == 0),
                                  "treated: post vs pre", outcome))
    return pd.DataFrame(rows)


def yearly_means(df: pd.DataFrame, outcome: str = "output") -> pd.DataFrame:
    """Yearly mean outcome for ever-treated vs never-treated villages (wide)."""
    ym = df.groupby(["year", "treated"])[outcome].mean().unstack("treated")
    ym = ym.rename(columns={0: "never_treated", 1: "ever_treated"})
    return ym.reset_index()


def event_time_means(df: pd.DataFrame, outcome: str = "output", ref_k: int = -1) -> pd.DataFrame:
    """Treated-village means by event time, net of never-treated yearly means,
    normalised to zero at `ref_k`."""
    never_mean = df[df["treated"] == 0].groupby("year")[outcome].mean()
    tr = df[df["treated"] == 1].copy()
    if never_mean.empty or tr.empty:
        raise ValueError("Need both treated and never-treated villages for event-time means.")
    tr["gap"] = tr[outcome] - tr["year"].map(never_mean)
    em = tr.groupby("event_time")["gap"].agg(["mean", "count"]).reset_index()
    em = em.rename(columns={"event_time": "k", "mean": "gap"})
    em["k"] = em["k"].astype(int)
    if ref_k in em["k"].values:
        em["gap"] = em["gap"] - em.loc[em["k"] == ref_k, "gap"].iat[0]
    return em


# --------------------------
# Plots
# --------------------------
def plot_raw_trends(ym: pd.DataFrame, path: Path):
    plt.figure(figsize=(8, 5))
    plt.plot(ym["year"], ym["ever_treated"], "o-", label="Ever female leader")
    plt.plot(ym["year"], ym["never_treated"], "s--", label="Never female leader")
    plt.title("Mean gross output by year")
    plt.xlabel("Year")
    plt.ylabel("Mean gross output")
    plt.legend()
    plt.grid(alpha=0.3)
    plt.tight_layout()
    plt.savefig(path, dpi=300)
    plt.close()
    print("✅ Saved plot:", path)


def plot_cohort_trends(df: pd.DataFrame, path: Path, outcome: str = "output"):
    cm = df.groupby(["cohort", "year"])[outcome].mean().reset_index()
    plt.figure(figsize=(9, 5))
    for cohort, grp in cm.groupby("cohort"):
        if cohort == 0:
            plt.plot(grp["year"], grp[outcome], color="black", lw=2, ls="--", label="never treated")
            continue
        line, = plt.plot(grp["year"], grp[outcome], "o-", ms=3, label=f"cohort {cohort}")
        if cohort >= grp["year"].min():
            plt.axvline(cohort, color=line.get_color(), lw=0.8, alpha=0.5)
    plt.title("Mean gross output by election cohort")
    plt.xlabel("Year")
    plt.ylabel("Mean gross output")
    plt.legend(fontsize=7, ncol=2)
    plt.grid(alpha=0.3)
    plt.tight_layout()
    plt.savefig(path, dpi=300)
    plt.close()
    print("✅ Saved plot:", path)


def plot_event_time_means(em: pd.DataFrame, path: Path, ref_k: int = -1):
    plt.figure(figsize=(8, 5))
    plt.axhline(0, color="gray", lw=1)
    plt.axvline(ref_k + 0.5, color="gray", lw=1, ls="--")
    plt.plot(em["k"], em["gap"], "o-")
    plt.title("Treated minus never-treated output by event time (raw)")
    plt.xlabel(f"Years relative to first female leader (ref k = {ref_k})")
    plt.ylabel("Gap in mean gross output")
    plt.grid(alpha=0.3)
    plt.tight_layout()
    plt.savefig(path, dpi=300)
    plt.close()
    print("✅ Saved plot:", path)


def main(out_dir: Path = OUT):
    out_dir = Path(out_dir)
    print("➡️ Loading village panel...")
    df = never_vs_ever(load_panel(out_dir))
    print("Rows x Cols:", df.shape)

    print("➡️ Comparing means...")
    res = run_comparisons(df)
    print(res[["comparison", "outcome", "diff", "t", "p"]].to_string(index=False))
    res.to_csv(out_dir / "mean_comparisons.csv", index=False)
    print("✅ Saved:", out_dir / "mean_comparisons.csv")

    print("\nMeans by treatment status and period:")
    print(group_means(df, ["treated", "post"]).to_string(index=False))

    print("➡️ Plotting pre-trends...")
    ym = yearly_means(df)
    ym.to_csv(out_dir / "yearly_means.csv", index=False)
    plot_raw_trends(ym, out_dir / "raw_trends.png")
    plot_cohort_trends(df, out_dir / "cohort_trends.png")
    plot_event_time_means(event_time_means(df), out_dir / "event_time_means.png")


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print("❌ Error:", e)
        traceback.print_exc()
        sys.exit(1)
