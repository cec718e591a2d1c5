"""Helper functions for unittests.

Builds a small synthetic array experiment: an annotation with type I (red and
green) and type II probes with 1 to 3 body CpGs, negative and normalization
control probes, red/green intensities of two sample groups and a sample
sheet. Every third probe is differentially methylated between the groups.
"""

from pathlib import Path

import numpy as np
import pandas as pd

GROUP_A = "DS"
GROUP_B = "WT"

SAMPLE_IDS_A = [f"200925700125_R0{i}C01" for i in range(1, 5)]
SAMPLE_IDS_B = [f"200925700133_R0{i}C01" for i in range(1, 5)]

PROBE_ADDRESS_START = 10_000_000
CONTROL_ADDRESS_START = 20_000_000
N_NEGATIVE = 40

TOTAL_SIGNAL = (5000, 10000)
BACKGROUND = (300, 50)


def _probe_frame(n_per_class):
    rows = []
    counter = 0
    for design in ["I", "II"]:
        for n_cpg in [1, 2, 3]:
            for k in range(n_per_class):
                address_a = PROBE_ADDRESS_START + 2 * counter
                rows.append(
                    {
                        "IlmnID": f"cg{counter:08d}",
                        "Name": f"cg{counter:08d}",
                        "AddressA_ID": address_a,
                        "AddressB_ID": (
                            address_a + 1 if design == "I" else None
                        ),
                        "Infinium_Design_Type": design,
                        "Color_Channel": (
                            ("Red" if k % 2 == 0 else "Grn")
                            if design == "I"
                            else None
                        ),
                        "CHR": ["1", "2", "X"][counter % 3],
                        "MAPINFO": 1000 + 100 * counter,
                        "N_CpG": n_cpg,
                    }
                )
                counter += 1
    # SNP probe, not a methylation probe
    rows.append(
        {
            "IlmnID": "rs00000001",
            "Name": "rs00000001",
            "AddressA_ID": PROBE_ADDRESS_START + 2 * counter,
            "AddressB_ID": None,
            "Infinium_Design_Type": "II",
            "Color_Channel": None,
            "CHR": "5",
            "MAPINFO": 500,
            "N_CpG": 0,
        }
    )
    return pd.DataFrame(rows)


def _control_frame():
    control_types = ["NEGATIVE"] * N_NEGATIVE + [
        "NORM_A",
        "NORM_C",
        "NORM_G",
        "NORM_T",
    ]
    return pd.DataFrame(
        {
            "Address_ID": (
                CONTROL_ADDRESS_START + np.arange(len(control_types))
            ),
            "Control_Type": control_types,
            "Color": "Black",
            "Extended_Type": [
                f"{name}_{i}" for i, name in enumerate(control_types)
            ],
        }
    )


class SyntheticExperiment:
    """Creates a synthetic two group methylation array experiment.

    Attributes:
        annotation (pandas.DataFrame): Manifest-style probe table.
        controls (pandas.DataFrame): Control probe table.
        red (pandas.DataFrame): Red intensities, address x sample.
        grn (pandas.DataFrame): Green intensities, address x sample.
        sample_sheet (pandas.DataFrame): Illumina-style sample sheet.
        betas (pandas.DataFrame): Simulated methylation fractions.
        differential (list): Probes methylated higher in group A.
        failing (tuple): (IlmnID, Sample_ID) without signal, or None.
    """

    def __init__(
        self,
        n_per_class=6,
        seed=0,
        failing=True,
        n_other=0,
    ):
        rng = np.random.default_rng(seed)
        self.annotation = _probe_frame(n_per_class)
        self.controls = _control_frame()
        self.sample_ids = SAMPLE_IDS_A + SAMPLE_IDS_B
        groups = [GROUP_A] * len(SAMPLE_IDS_A) + [GROUP_B] * len(SAMPLE_IDS_B)
        for i in range(n_other):
            self.sample_ids.append(f"200925700140_R0{i + 1}C01")
            groups.append("Other")

        probes = self.annotation[
            ~self.annotation.IlmnID.str.startswith("rs")
        ].reset_index(drop=True)
        is_a = np.array([group == GROUP_A for group in groups])
        is_differential = (np.arange(len(probes)) % 3) == 0
        self.differential = probes.IlmnID[is_differential].tolist()

        true_beta = np.full((len(probes), len(self.sample_ids)), 0.5)
        true_beta[np.ix_(is_differential, is_a)] = 0.8
        true_beta[np.ix_(is_differential, ~is_a)] = 0.2
        beta = np.clip(
            true_beta + rng.normal(0, 0.03, true_beta.shape), 0.01, 0.99
        )
        self.betas = pd.DataFrame(
            beta, index=probes.IlmnID.values, columns=self.sample_ids
        )
        total = rng.uniform(*TOTAL_SIGNAL, size=beta.shape)
        methylated = np.round(total * beta)
        unmethylated = np.round(total * (1 - beta))

        addresses = np.concatenate(
            [
                self.annotation.AddressA_ID.values,
                self.annotation.AddressB_ID.dropna().values,
                self.controls.Address_ID.values,
            ]
        ).astype("int64")
        shape = (len(addresses), len(self.sample_ids))
        red = np.round(np.abs(rng.normal(*BACKGROUND, size=shape)))
        grn = np.round(np.abs(rng.normal(*BACKGROUND, size=shape)))
        row = pd.Index(addresses).get_indexer

        for i, probe in probes.iterrows():
            address_a = row([probe.AddressA_ID])[0]
            if probe.Infinium_Design_Type == "II":
                grn[address_a] = methylated[i]
                red[address_a] = unmethylated[i]
                continue
            address_b = row([int(probe.AddressB_ID)])[0]
            channel = red if probe.Color_Channel == "Red" else grn
            channel[address_b] = methylated[i]
            channel[address_a] = unmethylated[i]

        self.failing = None
        if failing:
            # Type II probe without signal in the first sample of group B
            probe = probes[probes.Infinium_Design_Type == "II"].iloc[1]
            address_a = row([probe.AddressA_ID])[0]
            red[address_a, len(SAMPLE_IDS_A)] = 0
            grn[address_a, len(SAMPLE_IDS_A)] = 0
            self.failing = (probe.IlmnID, SAMPLE_IDS_B[0])

        index = pd.Index(addresses, name="Address_ID")
        self.red = pd.DataFrame(red, index=index, columns=self.sample_ids)
        self.grn = pd.DataFrame(grn, index=index, columns=self.sample_ids)

        slides, positions = zip(*[x.split("_") for x in self.sample_ids])
        self.sample_sheet = pd.DataFrame(
            {
                "Sample_Name": [f"S{i + 1}" for i in range(len(groups))],
                "Sample_Group": groups,
                "Sentrix_ID": slides,
                "Sentrix_Position": positions,
            }
        )

    @property
    def methylation_probes(self):
        return self.betas.index.tolist()

    def write(self, directory):
        """Writes all tables as csv files to 'directory'.

        Returns:
            dict: Paths by table name.
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        paths = {
            "red": directory / "red.csv.gz",
            "grn": directory / "grn.csv.gz",
            "annotation": directory / "probes.csv",
            "controls": directory / "controls.csv",
            "sample_sheet": directory / "samples.csv",
        }
        self.red.to_csv(paths["red"])
        self.grn.to_csv(paths["grn"])
        self.annotation.to_csv(paths["annotation"], index=False)
        self.controls.to_csv(paths["controls"], index=False)
        self.sample_sheet.to_csv(paths["sample_sheet"], index=False)
        return paths


def add_unmeasured_probes(annotation):
    """Appends two methylation probes that cannot be measured on the array.

    'cg99999998' is a type II probe with a bead address missing from the
    intensities, 'cg99999999' a type I probe without color channel.

    Returns:
        tuple: The extended annotation and the list of added IlmnIDs.
    """
    template = annotation[annotation.Infinium_Design_Type == "I"].iloc[0]
    missing_address = template.copy()
    missing_address["IlmnID"] = missing_address["Name"] = "cg99999998"
    missing_address["AddressA_ID"] = 99_999_999
    missing_address["AddressB_ID"] = None
    missing_address["Infinium_Design_Type"] = "II"
    missing_address["Color_Channel"] = None
    no_channel = template.copy()
    no_channel["IlmnID"] = no_channel["Name"] = "cg99999999"
    no_channel["Color_Channel"] = None
    extended = pd.concat(
        [annotation, pd.DataFrame([missing_address, no_channel])],
        ignore_index=True,
    )
    return extended, ["cg99999998", "cg99999999"]
