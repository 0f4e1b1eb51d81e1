"""
Error taxonomy for the rating pipeline.

Malformed input lines are not errors: the ingester drops them and reports
how many it skipped. Training cancellation is not an error either.
"""


class RecommenderError(Exception):
    """Base class for all pipeline errors."""


class IngestError(RecommenderError):
    """No valid rating records could be parsed from the input."""


class IndexOutOfRange(RecommenderError, IndexError):
    """A user or item id falls outside the tables fixed at model construction."""

    def __init__(self, kind: str, entity_id: int, size: int):
        self.kind = kind
        self.entity_id = entity_id
        self.size = size
        super().__init__(f"{kind} id {entity_id} out of range for table of size {size}")


class UnknownEntity(RecommenderError, LookupError):
    """Cold start: the user or item was never observed during training."""

    def __init__(self, kind: str, entity_id: int):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} {entity_id} was not seen during training")


class DivergenceError(RecommenderError):
    """Training loss became non-finite."""

    def __init__(self, epoch_index: int, loss: float):
        self.epoch_index = epoch_index
        self.loss = loss
        super().__init__(
            f"Training diverged in epoch {epoch_index} (loss={loss}); "
            f"try a lower learning rate"
        )


class TrainingInProgressError(RecommenderError):
    """train() was called on a model that is already being trained."""
