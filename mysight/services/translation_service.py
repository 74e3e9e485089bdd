"""Label Translation Service

Translates English classifier labels into the Russian display
language using a fixed term table, optionally falling back to DeepL
for labels the table does not know.
"""

import logging
import os
from typing import Optional

import deepl

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


class TranslationService:
    """Translates classifier labels into Russian."""

    TERM_MAPPING = {
        "bicycle": "велосипед",
        "car": "автомобиль",
        "dog": "собака",
        "cat": "кот",
        "person": "человек",
        "building": "здание",
        "tree": "дерево",
        "flower": "цветок",
        "bird": "птица",
        "water": "вода",
        "sky": "небо",
        "mountain": "гора",
        "beach": "пляж",
        "food": "еда",
        "indoor": "интерьер",
        "outdoor": "улица",
    }

    def __init__(
        self,
        use_deepl: bool = False,
        api_key: Optional[str] = None,
        target_lang: str = "RU",
        source_lang: str = "EN",
    ):
        """
        Args:
            use_deepl: Ask DeepL about labels missing from the term table.
            api_key: DeepL key, DEEPL_API_KEY by default.
            target_lang: DeepL target language.
            source_lang: DeepL source language.
        """
        self.use_deepl = use_deepl
        self.api_key = api_key or os.environ.get("DEEPL_API_KEY")
        self.target_lang = target_lang
        self.source_lang = source_lang
        self._translator: Optional[deepl.Translator] = None
        self._cache: dict[str, str] = dict(self.TERM_MAPPING)

    @property
    def translator(self) -> deepl.Translator:
        """DeepL client, created on first use."""
        if self._translator is None:
            if not self.api_key:
                raise ConfigurationError("DEEPL_API_KEY is not set")
            self._translator = deepl.Translator(self.api_key)
        return self._translator

    @property
    def can_use_deepl(self) -> bool:
        return self.use_deepl and bool(self.api_key)

    def translate(self, label: str) -> str:
        """Display-language form of a classifier label.

        Unknown labels come back unchanged when DeepL is off or fails.
        """
        key = label.lower().strip()
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        if not self.can_use_deepl:
            return label

        try:
            text = self.translator.translate_text(
                label,
                source_lang=self.source_lang,
                target_lang=self.target_lang,
            ).text
        except Exception as e:
            logger.warning(f"DeepL could not translate '{label}': {e}")
            return label

        self._cache[key] = text.lower()
        logger.debug(f"DeepL: {label} -> {self._cache[key]}")
        return self._cache[key]

    def clear_cache(self):
        """Forget DeepL results, keeping the term table."""
        self._cache = dict(self.TERM_MAPPING)
