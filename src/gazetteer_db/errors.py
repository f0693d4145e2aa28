"""Exception hierarchy for the gazetteer database."""


class GazetteerError(Exception):
    """Base class for all gazetteer errors."""


class ConfigurationError(GazetteerError, ValueError):
    """Invalid kind, threshold, filter or other option. Raised before any write."""


class RunStateError(GazetteerError):
    """Illegal ingestion run transition (e.g. completing a run that already finished)."""


class RunAlreadyInProgressError(RunStateError):
    """A run for the same (source, version) is already marked as running."""

    def __init__(self, source: str, source_version: str):
        self.source = source
        self.source_version = source_version
        super().__init__(f"Ingestion run already in progress for {source} {source_version}")


class MergeGroupError(GazetteerError):
    """A single duplicate group failed to merge; its transaction was rolled back."""

    def __init__(self, survivor_id: int, loser_ids: list[int], cause: Exception):
        self.survivor_id = survivor_id
        self.loser_ids = loser_ids
        self.cause = cause
        super().__init__(f"Failed to merge {loser_ids} into {survivor_id}: {cause}")
