from __future__ import annotations

import logging
from typing import Any, Mapping, Set

logger = logging.getLogger(__name__)


def check_input_header(header: Mapping[str, Any]) -> str:
    """Inspect the @HD line of an input BAM and return its sort/group order.

    Consensus calling needs all records of a molecule to be adjacent. A
    coordinate-sorted BAM almost never satisfies that, so it is rejected with
    fix instructions; other orders are accepted and checked while streaming.
    """
    hd = header.get("HD", {}) or {}
    sort_order = str(hd.get("SO", "unknown"))
    group_order = str(hd.get("GO", "none"))
    if sort_order == "coordinate":
        raise ValueError(
            "Input BAM is coordinate sorted; records of a molecule must be adjacent. "
            "Group reads by molecule first, e.g.: samtools sort -t MI -o grouped.bam input.bam "
            "(or use the output of fgbio GroupReadsByUmi)."
        )
    if sort_order not in {"queryname", "unsorted", "unknown"} or group_order not in {"query", "none"}:
        logger.info("Input BAM order SO=%s GO=%s; molecule adjacency is checked while reading.", sort_order, group_order)
    return sort_order


class MoleculeOrderChecker:
    """Detects a molecule id reappearing after another molecule was started."""

    def __init__(self) -> None:
        self._seen: Set[str] = set()

    def start(self, molecule_id: str) -> None:
        if molecule_id in self._seen:
            raise ValueError(
                f"Records for molecule '{molecule_id}' are not adjacent in the input. "
                "Run: samtools sort -t MI -o grouped.bam input.bam"
            )
        self._seen.add(molecule_id)
