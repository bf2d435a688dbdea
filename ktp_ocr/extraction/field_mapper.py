"""Ruleset-driven mapping of OCR text lines onto named document fields.

A ``DocumentRuleset`` describes one document layout as data: the ordered
vocabulary of field labels to look for, the canonical key each label is
stored under, and the rules that split a field value into two sub-fields.
``FieldMapper`` applies any such ruleset to raw OCR text.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from ktp_ocr.utils.logger import get_logger

from .engine import clean, pick, position, split_property

logger = get_logger(__name__)

FieldMapping = dict[str, str]


@dataclass(frozen=True)
class FieldRule:
    """A field label to look for in a line of text.

    Attributes:
        label: Lower-case label text as it appears on the document.
        key: Canonical output key. Defaults to ``label``.
        whole_line: Store the entire line instead of the text after
            the delimiter.
    """

    label: str
    key: str | None = None
    whole_line: bool = False

    @property
    def canonical_key(self) -> str:
        return self.key or self.label


@dataclass(frozen=True)
class SubSplitRule:
    """Splits the value of ``key`` into the two ``target_keys``.

    Separators are tried in order and the first that matches wins. When
    none match and ``positional`` is ``(length, at)``, a value of exactly
    ``length`` characters is cut at index ``at``.
    """

    key: str
    separators: tuple[str, ...]
    target_keys: tuple[str, str]
    positional: tuple[int, int] | None = None

    def apply(self, result: FieldMapping, value: str) -> bool:
        for separator in self.separators:
            if split_property(result, value, separator, self.target_keys):
                return True
        if self.positional is not None:
            length, at = self.positional
            if len(value) == length:
                result[self.target_keys[0]] = value[:at]
                result[self.target_keys[1]] = value[at:]
                return True
        return False


@dataclass(frozen=True)
class DocumentRuleset:
    """Complete extraction rules for one document layout."""

    name: str
    fields: tuple[FieldRule, ...]
    sub_splits: tuple[SubSplitRule, ...] = ()
    fixup: Callable[[FieldMapping], FieldMapping] | None = field(
        default=None, compare=False
    )


KTP_RULESET = DocumentRuleset(
    name="ktp",
    fields=(
        FieldRule("provinsi", whole_line=True),
        FieldRule("kabupaten", key="kabko", whole_line=True),
        FieldRule("kota", key="kabko", whole_line=True),
        FieldRule("nik"),
        FieldRule("nama"),
        FieldRule("lahir"),
        FieldRule("kelamin"),
        FieldRule("alamat"),
        # OCR renderings of "RT/RW"
        FieldRule("ataw", key="rt"),
        FieldRule("atrw", key="rt"),
        FieldRule("rtaw", key="rt"),
        FieldRule("rtrw", key="rt"),
        FieldRule("desa"),
        FieldRule("kecamatan"),
        FieldRule("agama"),
        FieldRule("kawin"),
        FieldRule("pekerjaan"),
        FieldRule("warga"),
        FieldRule("berlaku"),
    ),
    sub_splits=(
        SubSplitRule("lahir", (",",), ("lahir", "tgllahir")),
        SubSplitRule("kelamin", ("gol. darah", "gol darah"), ("kelamin", "goldarah")),
        SubSplitRule("rt", ("/",), ("rt", "rw"), positional=(6, 3)),
    ),
)


class FieldMapper:
    """Converts multi-line OCR text into a field mapping.

    A line matches a label when the label starts the line, or when it
    appears later in the line and the line also has a usable delimiter.
    Lines are processed in order, so a later line overwrites an earlier
    value stored under the same key.

    Args:
        ruleset: Rules for the document layout to extract.
    """

    def __init__(self, ruleset: DocumentRuleset) -> None:
        self.ruleset = ruleset
        self._sub_splits: dict[str, list[SubSplitRule]] = {}
        for rule in ruleset.sub_splits:
            self._sub_splits.setdefault(rule.key, []).append(rule)

    @property
    def name(self) -> str:
        return self.ruleset.name

    def normalize(self, text: str) -> FieldMapping:
        """Extract fields from raw OCR text.

        Args:
            text: Text recognized from a document image.

        Returns:
            Mapping of canonical field keys to values.
        """
        result: FieldMapping = {}
        for raw_line in text.splitlines():
            line = clean(raw_line)
            if not line:
                continue
            lower = line.lower()
            delimiter_pos = position(lower)
            for rule in self.ruleset.fields:
                prefix_index = lower.find(rule.label)
                if not (prefix_index == 0 or (prefix_index > 0 and delimiter_pos > 0)):
                    continue
                value = self._value(line, rule, prefix_index, delimiter_pos)
                key = rule.canonical_key
                result[key] = value
                for sub_split in self._sub_splits.get(key, ()):
                    sub_split.apply(result, value)

        logger.debug("Ruleset '%s' extracted %d fields", self.name, len(result))
        return self.fixup(result)

    def fixup(self, result: FieldMapping) -> FieldMapping:
        if self.ruleset.fixup is None:
            return result
        return self.ruleset.fixup(result)

    @staticmethod
    def _value(
        line: str, rule: FieldRule, prefix_index: int, delimiter_pos: int
    ) -> str:
        if rule.whole_line:
            return line
        value = clean(pick(line))
        # label without a delimiter, e.g. "NIK 3171..."
        if prefix_index == 0 and delimiter_pos == 0:
            value = value[len(rule.label) :].strip()
        return value


def ruleset_from_dict(name: str, data: dict) -> DocumentRuleset:
    """Build a ruleset from its YAML representation.

    Args:
        name: Ruleset name, used as the extractor type.
        data: Mapping with a ``fields`` list and an optional
            ``sub_splits`` list.

    Returns:
        The parsed ruleset.

    Raises:
        ValueError: If the definition is incomplete or has unknown keys.
    """
    try:
        fields = tuple(
            FieldRule(
                label=str(item["label"]).lower(),
                key=item.get("key"),
                whole_line=bool(item.get("whole_line", False)),
            )
            for item in data["fields"]
        )
        sub_splits = tuple(
            SubSplitRule(
                key=item["key"],
                separators=tuple(item.get("separators", ())),
                target_keys=tuple(item["target_keys"]),
                positional=(
                    tuple(item["positional"]) if item.get("positional") else None
                ),
            )
            for item in data.get("sub_splits") or ()
        )
    except (KeyError, TypeError, AttributeError) as exc:
        raise ValueError(f"Invalid ruleset '{name}': {exc}") from exc

    for sub_split in sub_splits:
        if len(sub_split.target_keys) != 2:
            raise ValueError(
                f"Invalid ruleset '{name}': sub split on '{sub_split.key}' "
                "needs exactly two target keys"
            )
    return DocumentRuleset(name=name, fields=fields, sub_splits=sub_splits)


def load_rulesets(path: Path) -> dict[str, DocumentRuleset]:
    """Load ruleset definitions from a YAML file.

    Args:
        path: Path to the rulesets YAML file.

    Returns:
        Rulesets keyed by name; empty if the file does not exist.
    """
    if not path.exists():
        logger.debug("No rulesets file at %s, using built-in rulesets", path)
        return {}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    rulesets = {
        name: ruleset_from_dict(name, definition) for name, definition in data.items()
    }
    logger.info("Loaded %d rulesets from %s", len(rulesets), path)
    return rulesets
