"""Cutover: Source -> Build -> Deploy release pipeline for serverless functions.

Each run fetches a source snapshot, builds a deployable package and cuts a
traffic-facing alias over to a newly published, immutable version:
  - Stage executors behind one abstract contract, scoped to least privilege
  - Content-addressed artifact store with per-run write-once bindings
  - Hash-chained SQLite run ledger (history, audit, last successful deploy)
  - Optimistic, compare-and-set alias switching; concurrent runs never clobber
  - Bounded waits on every external call and cooperative cancellation
"""

__version__ = "0.1.0"
__description__ = "Source -> Build -> Deploy pipeline with auditable alias cutover"

from cutover.core.orchestrator import PipelineOrchestrator
from cutover.core.pipeline import Pipeline
from cutover.cli.app import app as cli

__all__ = ["PipelineOrchestrator", "Pipeline", "cli", "__version__"]
