"""Error taxonomy for the daily card selection pipeline.

Only :class:`CatalogUnavailable` is meant to reach callers. The remaining
errors are raised and handled inside the pipeline to switch to a fallback
path.
"""

from __future__ import annotations


class CardSelectionError(Exception):
    """Base class for selection pipeline errors."""


class CatalogUnavailable(CardSelectionError):
    """The card catalog could not be loaded or is empty."""


class FilterExhausted(CardSelectionError):
    """The adaptive axis filter rejected every candidate."""


class CooldownExhausted(CardSelectionError):
    """The hard cooldown excluded every candidate."""


class PersistenceUnavailable(CardSelectionError):
    """A recency or hysteresis store could not be read or written."""


__all__ = [
    "CardSelectionError",
    "CatalogUnavailable",
    "FilterExhausted",
    "CooldownExhausted",
    "PersistenceUnavailable",
]
