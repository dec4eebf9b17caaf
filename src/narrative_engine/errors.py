"""Exceptions raised inside the narrative systems."""


class NarrativeError(Exception):
    """Base error for the narrative engine."""
    pass


class EffectError(NarrativeError):
    """An effect bundle references something malformed or unknown."""
    pass


class CatalogError(NarrativeError):
    """The template catalog could not be read at all."""
    pass


class StateError(NarrativeError):
    """Operation on an event or interview that is not active/pending."""
    def __init__(self, kind: str, ref: str, reason: str):
        self.kind = kind
        self.ref = ref
        self.reason = reason
        super().__init__(f"Cannot resolve {kind} {ref}: {reason}")
