from pathlib import Path
from typing import Optional

from skorbot.logging_config import get_logger

logger = get_logger("knowledge_base")

FALLBACK_KNOWLEDGE_BASE = "Anda adalah asisten AI dasar. Knowledge base belum dimuat atau gagal dimuat."


class KnowledgeBase:
    """Static system prompt placed at history[0] of every new session."""

    def __init__(self, content: Optional[str] = None):
        self._content = content.strip() if content and content.strip() else FALLBACK_KNOWLEDGE_BASE

    @property
    def content(self) -> str:
        return self._content

    @property
    def is_loaded(self) -> bool:
        return self._content != FALLBACK_KNOWLEDGE_BASE

    def update(self, content: str) -> bool:
        text = (content or "").strip()
        if not text:
            logger.warning("Empty knowledge base content ignored, keeping current prompt")
            return False
        self._content = text
        return True

    def load_file(self, path: str) -> bool:
        """Replace the prompt with the text of a UTF-8 file. Keeps the current prompt on failure."""
        if not path:
            return False
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            logger.error(f"Failed to read knowledge base file {path}: {exc}")
            return False
        loaded = self.update(text)
        if loaded:
            logger.info(f"Knowledge base loaded from {path} ({len(self._content)} chars)")
        return loaded
