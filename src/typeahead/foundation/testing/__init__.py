"""Testing helpers: scripted lookup collaborators with call recording."""

from .lookup import LookupCall, ScriptedLookup

__all__ = ["LookupCall", "ScriptedLookup"]
