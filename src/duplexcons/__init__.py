"""DuplexCons: duplex consensus calling for strand-tagged paired-end reads.

Public API is intentionally small; most users should use the CLI:

    duplexcons call --bam grouped.bam --outdir results/

Library use centres on :class:`duplexcons.duplex.DuplexConsensusCaller`.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
