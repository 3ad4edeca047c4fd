# src/05_estimate_eventstudy.py
# ================================================================
# EVENT STUDY ON THE VILLAGE PANEL
#
# Main outputs:
#   data_final/eventstudy_summary.txt
#   data_final/eventstudy_coefs.csv
#   data_final/eventstudy.png
#
# Robustness outputs:
#   *_refm2_*    (ref k = -2)
#   *_window3_*  (window [-3,+3])
#   *_log_*      (log output)
#   data_final/eventstudy_pretrends.csv (joint test of pre-period betas)
#
# ================================================================
# Never-treated villages carry event_k = ref_k, so they only
# contribute to the village and year effects. Event time is binned
# at the window ends: the endpoint dummies collect everything beyond.
# ================================================================
import sys
import traceback
from pathlib import Path

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
import matplotlib.pyplot as plt

from panel_utils import OUT, load_panel, never_vs_ever, save_summary

REF_K     = -1
ES_WINDOW = (-5, 5)
ES_TERM   = "C(event_k"


def bin_event_time(df: pd.DataFrame, lo: int, hi: int, ref_k: int = REF_K) -> pd.DataFrame:
    if not lo <= ref_k <= hi:
        raise ValueError(f"Reference period {ref_k} is outside the window [{lo}, {hi}].")
    d = df.copy()
    d["event_k"] = d["event_time"].clip(lower=lo, upper=hi)
    d.loc[d["treated"] == 0, "event_k"] = ref_k
    d["event_k"] = d["event_k"].astype(int)
    return d


def fit_event_study(df: pd.DataFrame, outcome: str = "output", ref_k: int = REF_K,
                    window: tuple = ES_WINDOW, cluster_col: str = "village"):
    d = bin_event_time(never_vs_ever(df), window[0], window[1], ref_k)
    d = d.dropna(subset=[outcome])
    formula = (
        f"{outcome} ~ C(event_k, Treatment(reference={ref_k}))"
        " + C(village) + C(year)"
    )
    print("\nFormula:\n ", formula)
    print(f"➡️ Estimating with cluster-robust SEs by: {cluster_col}")
    return smf.ols(formula, data=d).fit(
        cov_type="cluster",
        cov_kwds={"groups": d[cluster_col]}
    )


def extract_event_coefs(model, ref_k: int = REF_K) -> pd.DataFrame:
    """Event-time betas as a (k, beta, se) frame, reference row included at 0."""
    coefs = model.params.filter(like=ES_TERM)
    ses   = model.bse.filter(like=ES_TERM)

    rows = [(ref_k, 0.0, 0.0)]
    for term, beta in coefs.items():
        # Example term: 'C(event_k, Treatment(reference=-1))[T.-3]'
        k_str = term.split("[T.")[1].rstrip("]")
        try:
            k = int(float(k_str))
        except ValueError:
            print(f"⚠️ Warning: could not parse k from term '{term}'")
            continue
        rows.append((k, float(beta), float(ses[term])))

    return pd.DataFrame(rows, columns=["k", "beta", "se"]).sort_values("k").reset_index(drop=True)


def pretrend_test(model, ref_k: int = REF_K):
    """Joint F test that every pre-period beta (k < 0, k != ref) is zero."""
    names = list(model.params.index)
    pre = []
    for i, term in enumerate(names):
        if ES_TERM not in term:
            continue
        k = int(float(term.split("[T.")[1].rstrip("]")))
        if k < 0 and k != ref_k:
            pre.append(i)
    if not pre:
        return np.nan, np.nan, 0

    R = np.zeros((len(pre), len(names)))
    for row, col in enumerate(pre):
        R[row, col] = 1.0
    res = model.f_test(R)
    return float(np.squeeze(res.fvalue)), float(np.squeeze(res.pvalue)), len(pre)


def plot_event_study(est: pd.DataFrame, path: Path, title: str, ref_k: int = REF_K):
    plt.figure(figsize=(8, 5))
    plt.axhline(0, color="gray", lw=1)
    plt.axvline(-0.5, color="gray", lw=1, ls="--")
    plt.errorbar(est["k"], est["beta"], yerr=1.96 * est["se"], fmt="o-", capsize=4)
    plt.title(title)
    plt.xlabel(f"Years relative to first female leader (ref k = {ref_k})")
    plt.ylabel("Effect on gross output")
    plt.grid(alpha=0.3)
    plt.tight_layout()
    plt.savefig(path, dpi=300)
    plt.close()
    print("✅ Saved plot:", path)


def fit_and_plot(df: pd.DataFrame, out_prefix: str, outcome: str = "output",
                 ref_k: int = REF_K, window: tuple = ES_WINDOW, out_dir: Path = OUT) -> dict:
    out_dir = Path(out_dir)
    model = fit_event_study(df, outcome, ref_k, window)
    save_summary(model, out_dir / f"{out_prefix}_summary.txt")

    est = extract_event_coefs(model, ref_k)
    est.to_csv(out_dir / f"{out_prefix}_coefs.csv", index=False)
    plot_event_study(est, out_dir / f"{out_prefix}.png",
                     f"Event study: {outcome}, window {window}, ref k={ref_k}", ref_k)

    # Quick console diagnostics
    pre = est[(est["k"] < 0) & (est["k"] != ref_k)]["beta"].abs().mean()
    post = est[est["k"] >= 0]["beta"].abs().mean()
    print(f"Avg |beta_k| pre: {pre:.3f} | post: {post:.3f}")

    F, p, q = pretrend_test(model, ref_k)
    print(f"Pre-trend joint test: F = {F:.3f}, p = {p:.3f} ({q} restrictions)")
    return dict(spec=out_prefix, outcome=outcome, ref_k=ref_k,
                window_lo=window[0], window_hi=window[1],
                F=F, p=p, n_restrictions=q, N=int(model.nobs))


def main(out_dir: Path = OUT):
    out_dir = Path(out_dir)
    print("➡️ Loading village panel...")
    df = load_panel(out_dir)
    print("Rows x Cols:", df.shape)

    rows = []
    # MAIN: ref k = -1, window [-5, +5]
    rows.append(fit_and_plot(df, "eventstudy", out_dir=out_dir))
    # ROBUSTNESS 1: ref k = -2
    rows.append(fit_and_plot(df, "eventstudy_refm2", ref_k=-2, out_dir=out_dir))
    # ROBUSTNESS 2: window [-3, +3]
    rows.append(fit_and_plot(df, "eventstudy_window3", window=(-3, 3), out_dir=out_dir))
    # ROBUSTNESS 3: log output
    rows.append(fit_and_plot(df, "eventstudy_log", outcome="log_output", out_dir=out_dir))

    pt = pd.DataFrame(rows)
    pt.to_csv(out_dir / "eventstudy_pretrends.csv", index=False)
    print("✅ Saved:", out_dir / "eventstudy_pretrends.csv")


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print("❌ Error:", e)
        traceback.print_exc()
        sys.exit(1)
