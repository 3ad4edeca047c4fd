# src/01_build_panel.py
# Build the village x year analysis panel.
# Inputs : data_raw/village_panel.csv
# Outputs: data_final/village_panel.parquet / .csv
#          data_final/village_panel_audit.csv
#          data_final/cohort_sizes.csv
import sys
import traceback
from pathlib import Path

import pandas as pd

from panel_utils import (
    RAW_CSV, OUT, PANEL_PQT, PANEL_CSV, YEAR_MIN, YEAR_MAX,
    load_village_panel, validate_panel, add_treatment_indicators,
)


def cohort_sizes(df: pd.DataFrame) -> pd.DataFrame:
    """Number of villages per treatment cohort (0 = never treated)."""
    sizes = (
        df.drop_duplicates("village")
          .groupby("cohort", as_index=False)
          .agg(n_villages=("village", "nunique"))
    )
    sizes["label"] = sizes["cohort"].map(lambda c: "never treated" if c == 0 else str(c))
    return sizes


def build_panel(csv_path: Path = RAW_CSV, out_dir: Path = OUT,
                require_balanced: bool = True) -> pd.DataFrame:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    print("➡️ Loading raw village panel...")
    df = load_village_panel(csv_path)
    pre_miss = (df.isna().mean() * 100).round(2)

    print(f"➡️ Validating balanced panel {YEAR_MIN}-{YEAR_MAX}...")
    df = validate_panel(df, YEAR_MIN, YEAR_MAX, require_balanced=require_balanced)

    print("➡️ Deriving treatment indicators...")
    panel = add_treatment_indicators(df)

    # Minimal sanity checks
    assert set(panel["treated"].unique()).issubset({0, 1})
    assert set(panel["post"].unique()).issubset({0, 1})
    assert (panel.loc[panel["treated"] == 0, "post"] == 0).all()

    post_miss = (panel.isna().mean() * 100).round(2)
    audit = (pd.DataFrame({"pre_missing_%": pre_miss, "post_missing_%": post_miss})
               .sort_values("post_missing_%", ascending=False))
    audit.to_csv(out_dir / "village_panel_audit.csv", index=True)

    sizes = cohort_sizes(panel)
    sizes.to_csv(out_dir / "cohort_sizes.csv", index=False)

    out_pqt = out_dir / PANEL_PQT.name
    out_csv = out_dir / PANEL_CSV.name
    panel.to_parquet(out_pqt, index=False)
    panel.to_csv(out_csv, index=False)

    n_vil = panel["village"].nunique()
    n_tr = panel.loc[panel["treated"] == 1, "village"].nunique()
    print(f"   villages: {n_vil} (ever treated: {n_tr}, never treated: {n_vil - n_tr})")
    print("   cohorts:", dict(zip(sizes["label"], sizes["n_villages"])))
    print("✅ Saved:", out_pqt)
    print("✅ Saved:", out_csv)
    print("Rows x Cols (panel):", panel.shape)
    return panel


def main():
    build_panel()


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print("❌ Error:", e)
        traceback.print_exc()
        sys.exit(1)
