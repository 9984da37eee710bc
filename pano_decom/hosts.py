"""
Host list input.

Python side:
- .csv files: first column of every row (no header expected; a non-IP header
  cell is simply skipped)
- any other file: every IPv4/IPv6-looking token in the text
- Validates with ipaddress, normalizes, de-duplicates preserving order
"""

import ipaddress
import logging
import os
import re
from typing import Iterable, List

import pandas as pd

logger = logging.getLogger(__name__)

_CANDIDATE_RE = re.compile(r"[0-9A-Fa-f:.]*[.:][0-9A-Fa-f:.]+")


def normalize_hosts(candidates: Iterable[str]) -> List[str]:
    hosts: List[str] = []
    for raw in candidates:
        value = str(raw).strip().strip('"').strip("'").rstrip(".")
        if not value:
            continue
        try:
            hosts.append(str(ipaddress.ip_address(value)))
        except ValueError:
            logger.warning("Skipping '%s': not a valid IP address", value)

    deduped = list(dict.fromkeys(hosts))
    if len(deduped) != len(hosts):
        logger.info("De-duplicated hosts: %d → %d", len(hosts), len(deduped))
    return deduped


def read_hosts(path: str) -> List[str]:
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Hosts file not found: {path}")

    if path.lower().endswith(".csv"):
        df = pd.read_csv(path, header=None, usecols=[0], dtype=str, skip_blank_lines=True, encoding="utf-8-sig")
        candidates = df[0].dropna().tolist()
    else:
        with open(path, encoding="utf-8") as f:
            candidates = _CANDIDATE_RE.findall(f.read())

    hosts = normalize_hosts(candidates)
    if not hosts:
        raise ValueError(f"No hosts found in '{path}'")
    logger.info("Hosts found within '%s': %s", path, hosts)
    return hosts
