"""Indexer orchestrator."""

from .node import Indexer

__all__ = ["Indexer"]
