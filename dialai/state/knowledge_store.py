"""Durable storage of knowledge bases added or edited by the user."""

import json
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional, Sequence, Union
import structlog

from .call_store import atomic_write_json
from ..core.generator import DEFAULT_KNOWLEDGE_BASE, KnowledgeBase


logger = structlog.get_logger()


class KnowledgeBaseStore:
    """Keeps custom knowledge bases as a JSON list; the built-in one is never stored unchanged."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path or "~/.dialai/knowledge_bases.json").expanduser()

    def save(self, knowledge_bases: Sequence[KnowledgeBase]) -> None:
        records = [asdict(kb) for kb in knowledge_bases if kb != DEFAULT_KNOWLEDGE_BASE]
        try:
            atomic_write_json(self.path, records)
        except OSError as e:
            logger.error("Failed to save knowledge bases", path=str(self.path), error=str(e))
            raise

        logger.debug("Knowledge bases saved", path=str(self.path), count=len(records))

    def load(self) -> List[KnowledgeBase]:
        """Load stored knowledge bases; a missing or unreadable file yields none."""
        if not self.path.exists():
            return []

        try:
            with open(self.path, "r") as f:
                records = json.load(f)
            knowledge_bases = [KnowledgeBase(**record) for record in records]
        except (OSError, ValueError, TypeError) as e:
            logger.error(
                "Error loading knowledge bases", path=str(self.path), error=str(e)
            )
            return []

        return knowledge_bases
