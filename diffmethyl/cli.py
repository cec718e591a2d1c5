"""Command-line interface for running diffmethyl.

Usage:
    $ diffmethyl --red red.csv.gz --green grn.csv.gz   # Intensity matrices
                 --annotation probes.csv               # Probe annotation
                 --controls controls.csv               # Control probes
                 --sample_sheet samples.csv            # Samples and groups
    $ diffmethyl --help                                # Show all parameters

"""

import argparse
import re
import textwrap
from pathlib import Path

from diffmethyl.utils.varia import get_app_version


def print_welcome_message():
    """Prints ASCII art welcome message."""
    app_version = get_app_version()
    welcome_message = rf"""
     _ _  __  __                _   _           _
  __| (_)/ _|/ _|_ __ ___   ___| |_| |__  _   _| |
 / _` | | |_| |_| '_ ` _ \ / _ \ __| '_ \| | | | |
| (_| | |  _|  _| | | | | |  __/ |_| | | | |_| | |
 \__,_|_|_| |_| |_| |_| |_|\___|\__|_| |_|\__, |_|
                                          |___/

Version: {app_version}
Starting Differential Methylation Analysis...
"""
    print(welcome_message)


def absolute_path(path):
    """Converts a relative path to an absolute path."""
    return Path(path).absolute()


class SmartFormatter(argparse.ArgumentDefaultsHelpFormatter):
    """Keeps new lines and doesn't break words, but still wraps lines.

    Source: https://gist.github.com/panzi/b4a51b3968f67b9ff4c99459fb9c5b3d
    """

    def _split_lines(self, text, width):
        lines = []
        for line in textwrap.dedent(text).strip().split("\n"):
            ident = re.match(r"^\s*", line).group(0)
            curr_line = [ident] if ident else []
            curr_len = len(ident)
            for word in line.split():
                if curr_line and curr_len + len(word) + 1 > width:
                    lines.append(" ".join(curr_line))
                    curr_line = [ident] if ident else []
                    curr_len = len(ident)
                curr_line.append(word)
                curr_len += len(word) + (1 if curr_line else 0)
            lines.append(" ".join(curr_line))
        return lines

    def _fill_text(self, text, width, indent):
        return "\n".join(
            indent + line
            for line in self._split_lines(text, width - len(indent))
        )

    def _format_action(self, action):
        """Adds an extra newline after each option."""
        return super()._format_action(action) + "\n"


def parse_args(argv=None):
    """Parses command line arguments."""
    parser = argparse.ArgumentParser(
        prog="diffmethyl",
        description=(
            """
            diffmethyl: Differential Methylation Analysis
            ---------------------------------------------

            Compares two sample groups measured on Illumina methylation arrays. Probes are filtered by detection p-values, normalized with SWAN, tested per probe with the Wilcoxon rank-sum test and corrected for multiple testing (Benjamini-Hochberg and Bonferroni).

            Options not given on the command line are taken from the config file passed with --config, then from the package defaults.
            """
        ),
        epilog=(
            """
            Example usage:
            --------------

            1. Standard Options:
            Compares the groups 'DS' and 'WT' of the sample sheet:

                diffmethyl \\
                    --red red.csv.gz \\
                    --green grn.csv.gz \\
                    --annotation probes.csv \\
                    --controls controls.csv \\
                    --sample_sheet samples.csv

            2. Multiple Options:

                diffmethyl \\
                    --red red.csv.gz \\
                    --green grn.csv.gz \\
                    --annotation probes.csv \\
                    --controls controls.csv \\
                    --sample_sheet samples.csv \\
                    --group_a case \\
                    --group_b control \\
                    --threshold 0.05 \\
                    --prep raw \\
                    --n_jobs 4 \\
                    --output_dir /path/to/output
            """
        ),
        formatter_class=SmartFormatter,
    )
    parser.add_argument(
        "-R",
        "--red",
        type=absolute_path,
        required=True,
        help=(
            "Red channel intensities: bead addresses in the first column, "
            "one column per sample ID."
        ),
    )
    parser.add_argument(
        "-G",
        "--green",
        type=absolute_path,
        required=True,
        help="Green channel intensities in the same layout as --red.",
    )
    parser.add_argument(
        "-A",
        "--annotation",
        type=absolute_path,
        required=True,
        help=(
            "Probe annotation table (manifest export) with the columns "
            "IlmnID or Name, AddressA_ID, AddressB_ID, Infinium_Design_Type, "
            "Color_Channel, CHR, MAPINFO and the probe sequences or N_CpG."
        ),
    )
    parser.add_argument(
        "-C",
        "--controls",
        type=absolute_path,
        required=True,
        help="Control probe table with the columns Address_ID, Control_Type.",
    )
    parser.add_argument(
        "-s",
        "--sample_sheet",
        type=absolute_path,
        required=True,
        help=(
            "Sample sheet with Sentrix_ID and Sentrix_Position (or Basename) "
            "and the group column."
        ),
    )
    parser.add_argument(
        "-o",
        "--output_dir",
        type=absolute_path,
        help=(
            "Directory where the result tables are saved. Defaults to the "
            "directory set in the config file."
        ),
    )
    parser.add_argument(
        "-t",
        "--threshold",
        type=float,
        help=(
            "Detection p-value threshold. Probes above it in any sample are "
            "removed."
        ),
    )
    parser.add_argument(
        "-p",
        "--prep",
        type=str,
        choices=["raw", "swan"],
        help="Normalization of the tested beta values: 'raw' or 'swan'.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed of the random probe subset used by SWAN.",
    )
    parser.add_argument(
        "-a",
        "--group_a",
        type=str,
        help="First group label (Delta_Beta = mean A - mean B).",
    )
    parser.add_argument(
        "-b",
        "--group_b",
        type=str,
        help="Second group label.",
    )
    parser.add_argument(
        "-g",
        "--group_column",
        type=str,
        help="Sample sheet column holding the group labels.",
    )
    parser.add_argument(
        "-j",
        "--n_jobs",
        type=int,
        help="Number of worker processes, 0 chooses automatically.",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=absolute_path,
        help="TOML file overriding the package defaults.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"{get_app_version()}",
    )

    return parser.parse_args(argv)


def main(argv=None):
    """Entry point to start diffmethyl from command line."""
    args = parse_args(argv)
    cli_args = {k: v for k, v in vars(args).items() if v is not None}

    print_welcome_message()

    from diffmethyl.analysis import (
        load_inputs,
        run_analysis,
        summarize,
        write_results,
    )
    from diffmethyl.utils.varia import load_config

    config = load_config(cli_args.pop("config", None))
    raw, annotation, samples = load_inputs(
        cli_args.pop("red"),
        cli_args.pop("green"),
        cli_args.pop("annotation"),
        cli_args.pop("controls"),
        cli_args.pop("sample_sheet"),
        group_column=cli_args.pop("group_column", config["groups"]["column"]),
    )
    output_dir = cli_args.pop("output_dir", config["output"]["dir"])
    result = run_analysis(raw, annotation, samples, config=config, **cli_args)
    write_results(result, output_dir, config=config)
    summarize(result, config=config)
