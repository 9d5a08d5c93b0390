"""
Exception types raised by the habitat pipeline.
"""

from typing import Optional


class HabitatError(Exception):
    """Base class for all habitat errors."""


class DataUnavailableError(HabitatError, ValueError):
    """The data provider returned no records, or too few to model."""


class SchemaMismatchError(HabitatError, ValueError):
    """A column or band is not covered by the feature schema."""


class InsufficientPositivesError(HabitatError, ValueError):
    """Not enough presence rows to sample instances for explanation."""


class PredictionTimeoutError(HabitatError, TimeoutError):
    """The spatial prediction pass exceeded its time budget."""


class PipelineError(HabitatError):
    """
    A failure inside one species run.

    Carries the species and the step that failed so a runner can log,
    retry or skip that species.
    """

    def __init__(self, species: str, step: str, message: Optional[str] = None):
        self.species = species
        self.step = step
        detail = f": {message}" if message else ""
        super().__init__(f"[{species}] step '{step}' failed{detail}")
