"""
Logging setup and CSV reports.

- Candidate report: matched objects, written before anything is deleted
- Outcome report: one row per (grouping, object, stage), written after removal
"""

import csv
import logging
import os
import sys
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

import pandas as pd

from pano_decom.models import MatchedObject, RemovalOutcome

LOGGER_NAME = "pano_decom"


# ──────────────────────────────────────────────────────────────────
# LOGGING
# ──────────────────────────────────────────────────────────────────
def setup_logging(log_dir: Optional[str] = None, level: int = logging.INFO) -> Tuple[logging.Logger, str]:
    """
    Console + timestamped log file for the ``pano_decom`` logger tree.

    Library modules log through ``logging.getLogger(__name__)`` children, so
    ``level`` (DEBUG with --verbose) applies to all of them.
    """
    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = os.path.abspath(os.path.join(log_dir or ".", f"pano_decom_{ts}.log"))

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    fmt = logging.Formatter("%(asctime)s | %(levelname)-8s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(log_path, encoding="utf-8")):
        handler.setLevel(level)
        handler.setFormatter(fmt)
        logger.addHandler(handler)

    logger.info("Logging initialized at %s", logging.getLevelName(level))
    logger.info("Log file: %s", log_path)
    return logger, log_path


# ──────────────────────────────────────────────────────────────────
# REPORTS
# ──────────────────────────────────────────────────────────────────
def write_candidate_report(
    pano_host: str,
    matched: Sequence[MatchedObject],
    logger: logging.Logger,
    out_dir: Optional[str] = None,
) -> str:
    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    out_path = os.path.abspath(os.path.join(out_dir or ".", f"pano_{pano_host}_decom_candidates_{ts}.csv"))

    fieldnames = ["grouping", "object_name", "value", "host"]

    with open(out_path, "w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=fieldnames)
        w.writeheader()
        for m in sorted(matched, key=lambda m: (m.grouping, m.name)):
            w.writerow({"grouping": m.grouping, "object_name": m.name, "value": m.value, "host": m.host})

    logger.info("Candidate objects report written to: %s", out_path)
    return out_path


OUTCOME_COLUMNS = ["grouping", "object_name", "stage", "status", "detail"]


def write_outcome_report(
    pano_host: str,
    outcomes: List[RemovalOutcome],
    logger: logging.Logger,
    out_dir: Optional[str] = None,
) -> str:
    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    out_path = os.path.abspath(os.path.join(out_dir or ".", f"pano_{pano_host}_decom_outcomes_{ts}.csv"))

    pd.DataFrame([o.as_row() for o in outcomes], columns=OUTCOME_COLUMNS).to_csv(out_path, index=False)

    logger.info("Removal outcome report written to: %s", out_path)
    return out_path
