"""Lookup of field mappers by extractor type."""

from pathlib import Path

from ktp_ocr.utils.logger import get_logger

from .field_mapper import KTP_RULESET, FieldMapper, FieldMapping, load_rulesets

logger = get_logger(__name__)


class ExtractorRegistry:
    """Holds one ``FieldMapper`` per known extractor type.

    The built-in KTP ruleset is always registered; rulesets loaded from
    ``rulesets_path`` are added on top and replace built-ins of the same name.

    Args:
        rulesets_path: Optional YAML file with extra rulesets.
    """

    def __init__(self, rulesets_path: Path | None = None) -> None:
        self._mappers: dict[str, FieldMapper] = {
            KTP_RULESET.name: FieldMapper(KTP_RULESET)
        }
        if rulesets_path is not None:
            for name, ruleset in load_rulesets(rulesets_path).items():
                self._mappers[name] = FieldMapper(ruleset)

    @property
    def types(self) -> list[str]:
        return sorted(self._mappers)

    def get(self, doc_type: str) -> FieldMapper | None:
        return self._mappers.get(doc_type)

    def extract(self, doc_type: str, text: str) -> FieldMapping | str:
        """Map ``text`` with the extractor for ``doc_type``.

        Unknown types get the text back unchanged.
        """
        mapper = self.get(doc_type)
        if mapper is None:
            logger.debug("No extractor for type '%s', returning raw text", doc_type)
            return text
        return mapper.normalize(text)
