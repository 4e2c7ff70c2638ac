from __future__ import annotations

from typing import Optional, Tuple

MOLECULE_ID_TAG = "MI"
_DELIMITER = "/"


class MalformedIdentifierError(ValueError):
    """Raised when a molecule identifier tag is absent or lacks a strand suffix."""


def parse_molecule_id(tag_value: Optional[str]) -> Tuple[str, str]:
    """Split ``<moleculeId>/<strandLabel>`` at the last ``/``.

    Only the last delimiter is significant, so ``"f///A"`` parses to
    ``("f//", "A")``.
    """
    if tag_value is None:
        raise MalformedIdentifierError(f"Read is missing the {MOLECULE_ID_TAG} tag.")
    idx = tag_value.rfind(_DELIMITER)
    if idx < 0:
        raise MalformedIdentifierError(
            f"{MOLECULE_ID_TAG} tag '{tag_value}' has no '{_DELIMITER}<strand>' suffix."
        )
    return tag_value[:idx], tag_value[idx + 1 :]


def source_molecule_id(tag_value: Optional[str]) -> str:
    return parse_molecule_id(tag_value)[0]
