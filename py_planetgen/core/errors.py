"""Exceptions raised by the planet generation pipeline."""


class PlanetGenerationError(Exception):
    """Base class for generation failures."""


class DegenerateInputError(PlanetGenerationError, ValueError):
    """Input parameters that cannot produce a valid planet.

    Raised before any state is mutated (subdivision degree < 1, radius <= 0,
    plate count outside [1, tile count), rates outside [0, 1]).
    """


class ConstraintViolation(PlanetGenerationError):
    """An edge rotation could not be found after scanning every edge once.

    Non-fatal: the distortion pass logs it and moves on.
    """


class StructuralInvariantError(PlanetGenerationError):
    """The mesh graph is wired inconsistently; topology derivation aborts."""
