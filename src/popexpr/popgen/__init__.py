"""Population-genetic selection scans (Ohana)."""

from popexpr.popgen.ohana import (
    ExternalToolError,
    OhanaConfig,
    SelscanRun,
    load_selscan_output,
    run_ohana_scan,
    run_selscan,
)

__all__ = [
    "ExternalToolError",
    "OhanaConfig",
    "SelscanRun",
    "load_selscan_output",
    "run_ohana_scan",
    "run_selscan",
]
