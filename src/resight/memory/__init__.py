"""Durable user preferences and learned flows."""

from resight.memory.models import LEARNED_FLOWS_KEY, LearnedFlow
from resight.memory.store import PreferenceStore, PreferenceStoreError

__all__ = ["PreferenceStore", "PreferenceStoreError", "LearnedFlow", "LEARNED_FLOWS_KEY"]
