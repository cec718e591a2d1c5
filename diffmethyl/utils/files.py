"""Utilities for handling file operations.

This module provides utilities such as locating package resources, ensuring
directories exist and reading the spreadsheet-like tables (intensity
matrices, annotation, sample sheets) the analysis consumes.
"""

import logging
from importlib.resources import files
from pathlib import Path
from typing import Union

import pandas as pd

logger = logging.getLogger(__name__)

__all__ = [
    "ensure_directory_exists",
    "get_resource_path",
    "read_dataframe",
    "strip_suffixes",
]

SPREADSHEET_SUFFIXES = (".csv", ".tsv", ".txt", ".xlsx", ".xls", ".ods")


def get_resource_path(package: str, resource_name: str = "") -> Path:
    """Returns the full path to the resource within the specified package."""
    package_path = files(package)
    return package_path.joinpath(resource_name)


def ensure_directory_exists(path_like: Union[str, Path]) -> None:
    """Ensures the ancestor directories of the provided path exist."""
    Path(path_like).mkdir(parents=True, exist_ok=True)


def strip_suffixes(path: Union[str, Path]) -> str:
    """Returns the lower case table suffix of 'path', ignoring '.gz'.

    Example:
        >>> strip_suffixes("/data/red.csv.gz")
        '.csv'
    """
    suffixes = [x.lower() for x in Path(path).suffixes]
    if suffixes and suffixes[-1] == ".gz":
        suffixes = suffixes[:-1]
    return suffixes[-1] if suffixes else ""


def read_dataframe(path: Union[str, Path], **kwargs) -> pd.DataFrame:
    """Reads a DataFrame from the specified file path.

    Supports ods, xlsx, xls, csv (comma-separated), csv (semicolon-separated),
    tsv and txt formats. Text formats may be gzip-compressed.

    Args:
        path (str): The file path to read the DataFrame from.
        **kwargs: Additional keyword arguments to pass to the underlying pandas
            read function.

    Returns:
        pd.DataFrame: The loaded DataFrame.

    Raises:
        FileNotFoundError: If 'path' does not exist.
        ValueError: If the file format is not supported.
    """
    path = Path(path).expanduser()
    if not path.exists():
        msg = f"File not found: {path}"
        raise FileNotFoundError(msg)
    suffix = strip_suffixes(path)
    if suffix in [".xlsx", ".xls"]:
        return pd.read_excel(path, **kwargs)
    if suffix == ".ods":
        return pd.read_excel(path, engine="odf", **kwargs)
    if suffix == ".tsv":
        return pd.read_csv(path, sep="\t", **kwargs)
    if suffix in [".csv", ".txt"]:
        return pd.read_csv(path, sep=None, engine="python", **kwargs)
    msg = (
        f"Unsupported file format '{suffix}'. Supported: "
        f"{', '.join(SPREADSHEET_SUFFIXES)} (optionally gzipped)."
    )
    raise ValueError(msg)
