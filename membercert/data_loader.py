import os

import pandas as pd

# Accepted header spellings for each certificate field (compared lowercased)
COLUMN_ALIASES = {
    "name": ("name", "member_name", "full_name", "member"),
    "member_number": ("member_number", "member_no", "membership_number", "number"),
    "membership_term": ("membership_term", "term"),
    "signed_date": ("signed_date", "issue_date", "issued", "date"),
    "valid_from": ("valid_from", "start_date", "from"),
    "valid_until": ("valid_until", "expiry_date", "end_date", "until"),
    "token": ("token", "verification_token"),
    "status": ("status",),
}


def load_data(path: str) -> pd.DataFrame:
    """
    Load a CSV or Excel roster into a DataFrame.

    Handles:
      - .csv files that are actually Excel format (common Excel export issue)
      - .xlsx and .xls files
      - Whitespace in column names and string cell values
      - Empty rows (drops them)

    Every cell is read as text so dates and member numbers keep the exact
    form they were typed in.

    Raises ValueError with a clear message on failure.
    """
    ext = os.path.splitext(path)[1].lower()

    df = None

    if ext == ".csv":
        # Try CSV first; if it fails or produces garbage, try Excel
        try:
            df = pd.read_csv(path, engine="python", dtype=str, keep_default_na=False)
            # A single column whose header starts with the zip magic is an xlsx file
            if len(df.columns) == 1 and str(df.columns[0]).startswith("PK"):
                raise ValueError("File is actually Excel format")
        except Exception:
            try:
                df = pd.read_excel(path, engine="openpyxl", dtype=str)
            except Exception as e:
                raise ValueError(
                    f"Could not read '{os.path.basename(path)}'. "
                    f"It appears to be neither valid CSV nor Excel. ({e})"
                ) from e
    elif ext in (".xlsx", ".xls"):
        try:
            df = pd.read_excel(path, engine="openpyxl", dtype=str)
        except Exception as e:
            raise ValueError(
                f"Could not read '{os.path.basename(path)}' as Excel. ({e})"
            ) from e
    else:
        raise ValueError(
            f"Unsupported file type '{ext}'. Please upload a .csv or .xlsx file."
        )

    # ── Clean up ──
    df.columns = [str(c).strip() for c in df.columns]
    df = df.fillna("")
    for col in df.columns:
        df[col] = df[col].astype(str).str.strip()

    # Drop rows where every cell is blank
    df = df[(df != "").any(axis=1)].reset_index(drop=True)

    if len(df) == 0:
        raise ValueError("The data file is empty, no rows to generate certificates from.")

    return df


def map_columns(columns):
    """
    Match roster headers to certificate fields, case-insensitively.

    Returns { field: original_column_name } for every field that matched.
    """
    by_lower = {str(col).strip().lower(): col for col in columns}
    mapping = {}
    for field, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in by_lower:
                mapping[field] = by_lower[alias]
                break
    return mapping


def records_from_frame(df):
    """
    Yield (row_index, certificate_mapping) for each roster row.

    Blank cells are left out so validation reports them as missing.
    """
    mapping = map_columns(df.columns)
    for idx, row in df.iterrows():
        record = {}
        for field, column in mapping.items():
            value = row[column]
            if value:
                record[field] = value
        yield idx, record
