# src/panel_utils.py
# Shared helpers for the village panel: loading, validation, treatment
# indicators, analysis subsets and small estimation utilities.
import numpy as np
import pandas as pd
from pathlib import Path
from janitor import clean_names

RAW = Path("data_raw")
OUT = Path("data_final")

RAW_CSV   = RAW / "village_panel.csv"
PANEL_PQT = OUT / "village_panel.parquet"
PANEL_CSV = OUT / "village_panel.csv"

YEAR_MIN, YEAR_MAX = 2001, 2015

VILLAGE_CANDIDATES  = ["village_id", "village", "vid", "village_code", "id"]
YEAR_CANDIDATES     = ["year", "yr", "survey_year"]
OUTPUT_CANDIDATES   = ["gross_output", "output", "gross_value_output", "gvo", "gdp", "y"]
ELECTION_CANDIDATES = ["first_female_year", "female_election_year", "first_female_election",
                       "election_year", "treat_year", "first_treat"]

PANEL_COLS = ["village", "year", "output", "first_female_year"]


def pick(colnames, candidates, label):
    """Pick the first existing column from a list of candidates; raise a clear error if none found."""
    for c in candidates:
        if c in colnames:
            return c
    raise KeyError(f"[{label}] Expected one of {candidates}, found {list(colnames)}")


# --------------------------
# Loading
# --------------------------
def load_village_panel(csv_path: Path = RAW_CSV) -> pd.DataFrame:
    """Read the raw CSV and return it with canonical columns
    (village, year, output, first_female_year)."""
    csv_path = Path(csv_path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Raw village panel not found. Expected {csv_path}")

    raw = pd.read_csv(csv_path).pipe(clean_names)
    print(f"   raw shape: {raw.shape}")

    village_col = pick(raw.columns, VILLAGE_CANDIDATES, "village")
    year_col    = pick(raw.columns, YEAR_CANDIDATES, "year")
    output_col  = pick(raw.columns, OUTPUT_CANDIDATES, "output")
    try:
        election_col = pick(raw.columns, ELECTION_CANDIDATES, "first female election")
    except KeyError:
        election_col = None
        print("⚠️ No election-year column found; every village is treated as never treated.")

    df = pd.DataFrame({
        "village": raw[village_col],
        "year": pd.to_numeric(raw[year_col], errors="coerce"),
        "output": pd.to_numeric(raw[output_col], errors="coerce"),
        "first_female_year": (
            pd.to_numeric(raw[election_col], errors="coerce") if election_col else np.nan
        ),
    })
    df["first_female_year"] = df["first_female_year"].astype(float)

    before = len(df)
    df = df.dropna(subset=["village", "year", "output"]).copy()
    if before - len(df):
        print(f"   Dropped {before - len(df)} rows missing village/year/output.")

    df["village"] = df["village"].astype(str)
    df["year"] = df["year"].astype(int)
    df["output"] = df["output"].astype(float)
    return df.reset_index(drop=True)


def load_panel(out_dir: Path = OUT) -> pd.DataFrame:
    """Load the analysis panel written by 01_build_panel.py."""
    pqt = Path(out_dir) / PANEL_PQT.name
    csv = Path(out_dir) / PANEL_CSV.name
    if pqt.exists():
        df = pd.read_parquet(pqt)
    elif csv.exists():
        df = pd.read_csv(csv)
    else:
        raise FileNotFoundError(
            f"Analysis panel not found. Run 01_build_panel.py first (expected {pqt} or {csv})"
        )
    df["village"] = df["village"].astype(str)
    return add_treatment_indicators(df[PANEL_COLS])


# --------------------------
# Validation
# --------------------------
def validate_panel(df: pd.DataFrame, lo: int = YEAR_MIN, hi: int = YEAR_MAX,
                   require_balanced: bool = True) -> pd.DataFrame:
    """Enforce one election year per village and a balanced lo..hi panel."""
    missing = [c for c in PANEL_COLS if c not in df.columns]
    if missing:
        raise ValueError(f"Panel is missing columns {missing}. Available: {list(df.columns)}")

    n_before = len(df)
    df = restrict_years(df, lo, hi)
    if n_before - len(df):
        print(f"   Dropped {n_before - len(df)} rows outside {lo}-{hi}.")
    if df.empty:
        raise ValueError(f"No observations inside {lo}-{hi}.")

    dups = df.duplicated(subset=["village", "year"], keep=False)
    if dups.any():
        ex = df.loc[dups, ["village", "year"]].drop_duplicates().head(5).values.tolist()
        raise ValueError(f"{int(dups.sum())} duplicated village-year rows, e.g. {ex}")

    # one (or no) election year per village
    n_elect = df.groupby("village")["first_female_year"].nunique()
    bad = n_elect[n_elect > 1]
    if len(bad):
        raise ValueError(
            f"{len(bad)} villages have more than one first-female-election year: "
            f"{bad.index[:5].tolist()}"
        )
    df["first_female_year"] = df.groupby("village")["first_female_year"].transform("max")

    # balance
    n_years = hi - lo + 1
    counts = df.groupby("village")["year"].nunique()
    short = counts[counts < n_years]
    if len(short):
        msg = f"{len(short)} villages are not observed in all {n_years} years {lo}-{hi}"
        if require_balanced:
            raise ValueError(msg + f": {short.index[:5].tolist()}")
        print(f"⚠️ {msg}; dropping them.")
        df = df[~df["village"].isin(short.index)].copy()

    return df.sort_values(["village", "year"]).reset_index(drop=True)


# --------------------------
# Treatment indicators
# --------------------------
def add_treatment_indicators(df: pd.DataFrame, year_max: int = YEAR_MAX) -> pd.DataFrame:
    """Return a copy with treated / post / event_time / treat_post / cohort / log_output.

    A village counts as treated when its first female leader is elected no
    later than ``year_max``; later (or missing) election years are never
    treated within the sample.
    """
    out = df.copy()
    ffy = pd.to_numeric(out["first_female_year"], errors="coerce")
    in_sample = ffy.notna() & (ffy <= year_max)

    out["treated"]    = in_sample.astype(int)
    out["post"]       = (in_sample & (out["year"] >= ffy)).astype(int)
    out["event_time"] = (out["year"] - ffy).where(in_sample)
    out["treat_post"] = out["treated"] * out["post"]
    out["cohort"]     = ffy.where(in_sample, 0).astype(int)

    positive = out["output"] > 0
    if (~positive).any():
        print(f"⚠️ {int((~positive).sum())} rows with non-positive output; log_output set to NaN.")
    out["log_output"] = np.log(out["output"].where(positive))
    return out


# --------------------------
# Hand-picked analysis subsets
# --------------------------
def restrict_years(df: pd.DataFrame, lo: int, hi: int) -> pd.DataFrame:
    return df[(df["year"] >= lo) & (df["year"] <= hi)].copy()


def cohort_subset(df: pd.DataFrame, cohort_year: int, window: int = None) -> pd.DataFrame:
    """Villages first electing a woman in ``cohort_year`` plus never-treated villages.

    With ``window``, keep ``window`` years before the election and ``window``
    years from the election year on. Adds ``post_period`` (year >= cohort_year)
    for every row so the 2x2 design has a common cut.
    """
    d = add_treatment_indicators(df[PANEL_COLS])
    d = d[(d["cohort"] == cohort_year) | (d["treated"] == 0)].copy()
    if window is not None:
        d = restrict_years(d, cohort_year - window, cohort_year + window - 1)
    if d.empty or d["treated"].nunique() < 2:
        raise ValueError(f"Cohort {cohort_year} subset needs both treated and never-treated villages.")
    d["post_period"] = (d["year"] >= cohort_year).astype(int)
    return d


def drop_always_treated(df: pd.DataFrame, year_min: int = YEAR_MIN) -> pd.DataFrame:
    """Drop villages whose first female leader came at or before the first sample year."""
    d = add_treatment_indicators(df[PANEL_COLS])
    return d[~((d["treated"] == 1) & (d["cohort"] <= year_min))].copy()


def never_vs_ever(df: pd.DataFrame) -> pd.DataFrame:
    return add_treatment_indicators(df[PANEL_COLS])


# --------------------------
# Estimation helpers
# --------------------------
def twoway_demean(df_with_fe: pd.DataFrame, cols, fe1="village", fe2="year"):
    """
    De-mean each column in `cols` by FE1 and FE2: x - x_FE1 - x_FE2 + x_overall
    Exact within transformation for a balanced panel.
    """
    if fe1 not in df_with_fe.columns or fe2 not in df_with_fe.columns:
        raise ValueError("Both FE columns must exist for two-way demeaning.")

    out = df_with_fe[list(cols)].astype("float64").copy()
    overall = out.mean(axis=0)
    m1 = out.groupby(df_with_fe[fe1]).transform("mean")
    m2 = out.groupby(df_with_fe[fe2]).transform("mean")
    return out - m1 - m2 + overall


def coef_row(spec, coef_name, model):
    """One results-table row (spec, term, coef, se, p, N, R2) for a fitted model."""
    params = model.params
    return dict(
        spec=spec,
        term=coef_name,
        coef=float(params.get(coef_name, np.nan)),
        se=float(model.bse.get(coef_name, np.nan)),
        p=float(model.pvalues.get(coef_name, np.nan)),
        N=int(model.nobs),
        R2=float(getattr(model, "rsquared", np.nan)),
    )


def save_summary(model, path: Path):
    with open(path, "w", encoding="utf-8") as f:
        f.write(model.summary().as_text())
    print("✅ Saved summary:", path)
