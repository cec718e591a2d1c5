"""Join keys of the analysis tables and their validation."""

PROBE_KEY = "IlmnID"
SAMPLE_KEY = "Sample_ID"
RECORD_KEYS = [PROBE_KEY, SAMPLE_KEY]

# Number of offending keys shown in error messages
N_SHOWN = 5


class DuplicateKeyError(ValueError):
    """Raised if a table contains a join key more than once."""


def validate_unique_keys(data_frame, keys, name="table"):
    """Checks that 'keys' identify every row of 'data_frame' uniquely.

    Joining on non-unique keys silently multiplies rows, so all source tables
    are checked before they are merged.

    Args:
        data_frame (pandas.DataFrame): Table to check.
        keys (str or list): Column name(s) forming the key.
        name (str): Table name used in the error message.

    Raises:
        KeyError: If a key column is missing.
        DuplicateKeyError: If any key occurs more than once.
    """
    if isinstance(keys, str):
        keys = [keys]
    missing = [key for key in keys if key not in data_frame.columns]
    if missing:
        msg = f"Key column(s) {missing} missing in {name}."
        raise KeyError(msg)
    duplicated = data_frame.duplicated(subset=keys, keep=False)
    if not duplicated.any():
        return
    examples = (
        data_frame.loc[duplicated, keys]
        .drop_duplicates()
        .head(N_SHOWN)
        .to_dict("records")
    )
    n_keys = data_frame.loc[duplicated, keys].drop_duplicates().shape[0]
    msg = (
        f"{name} contains {n_keys} duplicated key(s) {keys}, "
        f"for example: {examples}"
    )
    raise DuplicateKeyError(msg)
