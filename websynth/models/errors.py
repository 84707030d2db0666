from __future__ import annotations


class PipelineError(Exception):
    """An infrastructure dependency (embedder or vector index) failed mid-run.

    Raised only after the run's ephemeral collection has been cleaned up.
    The original exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, *, stage: str, collection_name: str | None = None):
        super().__init__(message)
        self.stage = stage
        self.collection_name = collection_name
