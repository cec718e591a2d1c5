"""Sample sheet handling: sample identifiers, slide positions and groups."""

import logging
import re
from pathlib import Path

import pandas as pd

from diffmethyl.dtypes.keys import SAMPLE_KEY, validate_unique_keys
from diffmethyl.utils.files import read_dataframe

logger = logging.getLogger(__name__)

__all__ = ["SampleSheet", "extract_sentrix_id"]

GROUP = "Group"
SAMPLE_COLUMNS = [
    SAMPLE_KEY,
    "Sample_Name",
    "Slide",
    "Array",
    "Row",
    "Column",
    GROUP,
]


def extract_sentrix_id(text):
    """Extracts the Sentrix ID from a given text if found."""
    matches = re.findall(r"\d+_R\d{2}C\d{2}", str(text))
    return matches[-1] if matches else text


def _slide_and_array(data_frame):
    """Returns the slide and array columns of a sample sheet."""
    for slide_col, array_col in [
        ("Sentrix_ID", "Sentrix_Position"),
        ("Slide", "Array"),
    ]:
        if {slide_col, array_col}.issubset(data_frame.columns):
            return (
                data_frame[slide_col].astype(str).str.strip(),
                data_frame[array_col].astype(str).str.strip(),
            )
    if "Basename" in data_frame.columns:
        sentrix = (
            data_frame["Basename"]
            .map(lambda x: extract_sentrix_id(Path(str(x)).name))
            .astype(str)
        )
        parts = sentrix.str.extract(r"^(\d+)_(R\d{2}C\d{2})$")
        slide = parts[0].fillna(sentrix)
        array = parts[1].fillna("")
        return slide, array
    msg = (
        "Sample sheet must contain 'Sentrix_ID' and 'Sentrix_Position', "
        "'Slide' and 'Array', or 'Basename'."
    )
    raise KeyError(msg)


class SampleSheet:
    """Samples of the analysis and their group assignment.

    Sample IDs follow the Illumina convention '<slide>_<array>', for example
    '200925700125_R07C01', and must match the column names of the intensity
    matrices. The physical row and column on the slide are parsed from the
    array position 'RxxCyy'.

    Args:
        data_frame (pandas.DataFrame): The sample sheet. Must contain the
            group column and either 'Sentrix_ID'/'Sentrix_Position',
            'Slide'/'Array' or 'Basename'.
        group_column (str): Column holding the group labels. Defaults to
            'Sample_Group'.

    Raises:
        KeyError: If required columns are missing.
        DuplicateKeyError: If a sample ID occurs more than once.
    """

    def __init__(self, data_frame, group_column="Sample_Group"):
        if group_column not in data_frame.columns:
            msg = f"Group column '{group_column}' not found in sample sheet."
            raise KeyError(msg)
        self.group_column = group_column
        slide, array = _slide_and_array(data_frame)
        sample_ids = slide.where(array == "", slide + "_" + array)
        position = array.str.extract(r"R(\d{2})C(\d{2})")
        if "Sample_Name" in data_frame.columns:
            names = data_frame["Sample_Name"].astype(str)
        else:
            names = sample_ids
        sheet = pd.DataFrame(
            {
                SAMPLE_KEY: sample_ids.values,
                "Sample_Name": names.values,
                "Slide": slide.values,
                "Array": array.values,
                "Row": pd.to_numeric(position[0], errors="coerce")
                .astype("Int64")
                .values,
                "Column": pd.to_numeric(position[1], errors="coerce")
                .astype("Int64")
                .values,
                GROUP: data_frame[group_column].astype(str).str.strip().values,
            }
        )
        validate_unique_keys(sheet, SAMPLE_KEY, "sample sheet")
        self._data_frame = sheet

    @classmethod
    def from_file(cls, path, group_column="Sample_Group"):
        """Reads a sample sheet (csv, tsv, xlsx, ods) from disk.

        Illumina sample sheets may start with a '[Header]' section, in which
        case the table starts below the '[Data]' line.
        """
        logger.info("Reading sample sheet %s", path)
        skiprows = SampleSheet._data_section_start(path)
        data_frame = read_dataframe(path, skiprows=skiprows, dtype=str)
        return cls(data_frame, group_column=group_column)

    @staticmethod
    def _data_section_start(path):
        """Number of lines before the table of an Illumina sample sheet."""
        path = Path(path)
        if path.suffix.lower() not in [".csv", ".tsv", ".txt"]:
            return 0
        with path.open("r", encoding="utf-8", errors="replace") as file:
            for i, line in enumerate(file):
                if line.startswith("[Data]"):
                    return i + 1
        return 0

    @property
    def data_frame(self):
        """Samples with ID, name, slide position and group."""
        return self._data_frame

    @property
    def ids(self):
        """List of all sample IDs in sheet order."""
        return self._data_frame[SAMPLE_KEY].tolist()

    @property
    def groups(self):
        """Dictionary mapping every group label to its sample IDs."""
        return {
            label: frame[SAMPLE_KEY].tolist()
            for label, frame in self._data_frame.groupby(GROUP, sort=False)
        }

    def ids_in_group(self, label):
        """Returns the sample IDs of group 'label' in sheet order."""
        mask = self._data_frame[GROUP] == str(label)
        return self._data_frame.loc[mask, SAMPLE_KEY].tolist()

    def bipartition(self, group_a, group_b):
        """Splits the samples into the two compared groups.

        Group sizes may differ. Samples belonging to neither group are left
        out of the comparison.

        Returns:
            tuple: Sample IDs of group A and of group B.

        Raises:
            ValueError: If the labels are equal or a group has no samples.
        """
        if str(group_a) == str(group_b):
            msg = f"The compared groups must differ, got '{group_a}' twice."
            raise ValueError(msg)
        ids_a = self.ids_in_group(group_a)
        ids_b = self.ids_in_group(group_b)
        for label, ids in [(group_a, ids_a), (group_b, ids_b)]:
            if not ids:
                msg = (
                    f"No samples found for group '{label}'. Available "
                    f"groups: {sorted(self.groups)}"
                )
                raise ValueError(msg)
        n_other = len(self) - len(ids_a) - len(ids_b)
        if n_other:
            logger.info(
                "%s sample(s) belong to neither '%s' nor '%s' and are not "
                "compared",
                n_other,
                group_a,
                group_b,
            )
        return ids_a, ids_b

    def __len__(self):
        return len(self._data_frame)

    def __repr__(self):
        title = "SampleSheet():"
        lines = [
            title + "\n" + "*" * len(title),
            f"group_column: {self.group_column}",
            f"data_frame:\n{self.data_frame}",
        ]
        return "\n\n".join(lines)
