"""Create an empty ledger workbook with every sheet and header row."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional, Sequence

import openpyxl
from openpyxl.styles import Font
from openpyxl.workbook import Workbook

from . import data_manager, log


def build_master_workbook() -> Workbook:
    """Return an in-memory workbook with the ledger sheets and bold headers."""

    wb = openpyxl.Workbook()
    # Drop the default sheet openpyxl creates
    if "Sheet" in wb.sheetnames:
        del wb["Sheet"]

    bold_font = Font(bold=True)
    for sheet_name, columns in data_manager.SHEET_COLUMNS.items():
        ws = wb.create_sheet(title=sheet_name)
        for col_idx, column_name in enumerate(columns, 1):
            cell = ws.cell(row=1, column=col_idx)
            cell.value = column_name
            cell.font = bold_font
        ws.freeze_panes = "A2"
        log.debug("Created sheet '%s'", sheet_name)
    return wb


def create_master_workbook(destination: Path, *, overwrite: bool = False) -> Path:
    """Write a fresh ledger workbook to ``destination``.

    Args:
        destination (Path): Target ``.xlsx`` path.
        overwrite (bool): Replace an existing file instead of refusing.

    Returns:
        Path: The resolved path that was written.

    Raises:
        FileExistsError: If ``destination`` exists and ``overwrite`` is False.
    """

    target = Path(destination).expanduser().resolve()
    if target.exists() and not overwrite:
        raise FileExistsError(f"'{target}' already exists. Remove it or pass --overwrite to re-initialize.")

    data_manager.save_workbook(build_master_workbook(), target)
    log.info("Created ledger workbook '%s'", target)
    return target


def load_settings(config_path: Optional[Path] = None) -> data_manager.ConfigSettings:
    located = Path(data_manager.find_config_file(config_path)).expanduser().resolve()
    parser = data_manager.read_config(located)
    return data_manager.parse_settings(parser, base_path=located.parent)


def run_from_config(config_path: Optional[Path] = None, *, overwrite: bool = False) -> Path:
    """Create the workbook named by ``[System] DataFile`` in ``config.ini``."""

    settings = load_settings(config_path)
    return create_master_workbook(settings.data_file, overwrite=overwrite)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="fruit-ledger-setup",
        description="Initialize an empty Fruit Ledger workbook.",
    )
    parser.add_argument("--config", type=Path, help="Path to config.ini (defaults to upward search)")
    parser.add_argument("--output", type=Path, help="Write the workbook here instead of the configured DataFile")
    parser.add_argument("--overwrite", action="store_true", help="Replace an existing workbook")
    return parser.parse_args(list(argv) if argv is not None else None)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        if args.output is not None:
            target = create_master_workbook(args.output, overwrite=args.overwrite)
        else:
            target = run_from_config(args.config, overwrite=args.overwrite)
    except (FileExistsError, FileNotFoundError, KeyError) as exc:
        print(f"Error: {exc}")
        return 1

    print(f"Successfully created '{target}'.")
    print("You can now run 'fruit-ledger' to record suppliers, supplies and payments.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
