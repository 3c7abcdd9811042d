"""
User-defined deck formats.

A CustomFormatDefinition declares a template with ``{{variable}}``
placeholders, the variables it uses and a list of validation rules.
CustomFormatAdapter turns such a definition into a working adapter:

- export substitutes placeholders in the template
- import checks the rules, then extracts a fixed set of variables
  (name, description, format, commander, cards) with simple line strategies

This is an escape hatch for ad-hoc list formats, not a template engine.
Placeholders other than the supported variables are ignored on import, and
the text around placeholders is never matched against the input.
"""
import re
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from deckbridge.services.platforms.base import BasePlatformAdapter, safe_filename
from deckbridge.services.platforms.exceptions import FormatDefinitionError
from deckbridge.services.platforms.types import (
    AdapterCapabilities,
    CommanderSource,
    CustomRuleValidator,
    DeckFile,
    DeckInput,
    DeckMetadata,
    ExportOptions,
    ExportResult,
    ParseOptions,
    ParseResult,
    ParseWarning,
    StandardCard,
    StandardDeck,
    input_text,
)

logger = structlog.get_logger()

PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")
CARD_LINE = re.compile(r"^(\d+)x?\s+(.+)$")


# ============ Definition Models ============


class VariableType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class RuleType(str, Enum):
    REQUIRED = "required"  # parameters.pattern must appear in the content
    FORMAT = "format"      # parameters.regex must match somewhere
    RANGE = "range"        # line count within parameters.min / parameters.max
    CUSTOM = "custom"      # parameters.validator(content) -> bool


class CustomFormatVariable(BaseModel):
    """A placeholder the template may reference."""
    name: str
    type: VariableType = VariableType.STRING
    description: str = ""
    required: bool = False
    default_value: Optional[Any] = None


class ValidationRule(BaseModel):
    """A check imported content must pass."""
    field: str = "content"
    type: RuleType
    parameters: dict[str, Any] = Field(default_factory=dict)
    message: str


class CustomFormatValidation(BaseModel):
    json_schema: Optional[str] = None
    rules: list[ValidationRule] = Field(default_factory=list)


class CustomFormatDefinition(BaseModel):
    """Declarative description of a user-defined deck format."""
    id: str
    name: str
    description: str = ""
    file_extension: str = "txt"
    mime_type: str = "text/plain"
    template: str
    variables: list[CustomFormatVariable] = Field(default_factory=list)
    validation: CustomFormatValidation = Field(default_factory=CustomFormatValidation)

    @field_validator("id", "name", "template")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("file_extension")
    @classmethod
    def strip_dot(cls, v: str) -> str:
        return v.strip().lstrip(".").lower()

    def variable(self, name: str) -> Optional[CustomFormatVariable]:
        return next((v for v in self.variables if v.name == name), None)

    def placeholders(self) -> list[str]:
        """Placeholder names in template order, without repeats."""
        return list(dict.fromkeys(PLACEHOLDER.findall(self.template)))


# ============ Validation Rules ============


def _check_required(content: str, params: dict[str, Any]) -> bool:
    return str(params.get("pattern", "")) in content


def _check_format(content: str, params: dict[str, Any]) -> bool:
    return re.search(str(params.get("regex", "")), content, re.MULTILINE) is not None


def _check_range(content: str, params: dict[str, Any]) -> bool:
    lines = len(content.split("\n"))
    low = params.get("min", 0)
    high = params.get("max", float("inf"))
    return low <= lines <= high


def _check_custom(content: str, params: dict[str, Any]) -> bool:
    validator: Optional[CustomRuleValidator] = params.get("validator")
    if not callable(validator):
        return True
    return bool(validator(content))


RULE_CHECKS: dict[RuleType, Callable[[str, dict[str, Any]], bool]] = {
    RuleType.REQUIRED: _check_required,
    RuleType.FORMAT: _check_format,
    RuleType.RANGE: _check_range,
    RuleType.CUSTOM: _check_custom,
}


def validate_against_rules(content: str, rules: list[ValidationRule]) -> list[str]:
    """Messages of every rule the content fails (empty when it passes)."""
    failures = []
    for rule in rules:
        try:
            passed = RULE_CHECKS[rule.type](content, rule.parameters)
        except re.error as e:
            logger.warning("Invalid regex in custom format rule", field=rule.field, error=str(e))
            passed = False
        if not passed:
            failures.append(rule.message)
    return failures


# ============ Variable Extraction ============


def _key_value(key: str) -> Callable[[list[str]], Optional[str]]:
    prefix = f"{key}:"

    def extract(lines: list[str]) -> Optional[str]:
        for line in lines:
            stripped = line.strip()
            if stripped.lower().startswith(prefix):
                return stripped[len(prefix):].strip() or None
        return None

    return extract


def _card_lines(lines: list[str]) -> Optional[str]:
    cards = [line.strip() for line in lines if CARD_LINE.match(line.strip())]
    return "\n".join(cards) if cards else None


VARIABLE_EXTRACTORS: dict[str, Callable[[list[str]], Optional[str]]] = {
    "name": _key_value("name"),
    "description": _key_value("description"),
    "format": _key_value("format"),
    "commander": _key_value("commander"),
    "cards": _card_lines,
}


def extract_variables(content: str, definition: CustomFormatDefinition) -> dict[str, Any]:
    """
    Values for the definition's variables found in ``content``.

    Declared defaults come first; placeholders in the template that are both
    declared and supported by VARIABLE_EXTRACTORS override them.
    """
    values: dict[str, Any] = {
        v.name: v.default_value for v in definition.variables if v.default_value is not None
    }
    lines = content.split("\n")
    for placeholder in definition.placeholders():
        extractor = VARIABLE_EXTRACTORS.get(placeholder)
        if extractor is None or definition.variable(placeholder) is None:
            continue
        value = extractor(lines)
        if value is not None:
            values[placeholder] = value
    return values


# ============ Adapter ============


class CustomFormatAdapter(BasePlatformAdapter):
    """Adapter driven by a CustomFormatDefinition."""

    version = "1.0.0"
    capabilities = AdapterCapabilities(
        can_import=True,
        can_export=True,
        supports_multiple_decks=False,
        supports_bulk_operations=False,
        supports_metadata=True,
        supports_categories=True,
        supports_custom_fields=True,
        requires_authentication=False,
    )

    def __init__(self, definition: Optional[CustomFormatDefinition] = None, **kwargs):
        super().__init__(**kwargs)
        self._definition = definition

    @property
    def definition(self) -> Optional[CustomFormatDefinition]:
        return self._definition

    def set_format_definition(self, definition: CustomFormatDefinition) -> None:
        self._definition = definition

    @property
    def id(self) -> str:
        return self._definition.id if self._definition else "custom"

    @property
    def name(self) -> str:
        return self._definition.name if self._definition else "Custom Format"

    @property
    def supported_formats(self) -> list[str]:
        if self._definition is None:
            return ["custom"]
        return list(dict.fromkeys([self._definition.id, self._definition.file_extension]))

    def _require_definition(self) -> CustomFormatDefinition:
        if self._definition is None:
            raise FormatDefinitionError("No format definition provided")
        return self._definition

    async def can_handle(self, data: DeckInput) -> bool:
        definition = self._definition
        if definition is None:
            return False
        if isinstance(data, DeckFile) and data.extension == definition.file_extension:
            return True
        # Without rules any text would match, so content detection needs at least one
        if not definition.validation.rules:
            return False
        return not validate_against_rules(input_text(data), definition.validation.rules)

    async def parse_decks(self, data: DeckInput, options: Optional[ParseOptions] = None) -> ParseResult:
        """
        Raises:
            FormatDefinitionError: If the adapter has no definition.
        """
        self._require_definition()
        return await super().parse_decks(data, options)

    async def export_deck(
        self,
        deck: StandardDeck,
        format: Optional[str] = None,
        options: Optional[ExportOptions] = None,
    ) -> ExportResult:
        """
        Raises:
            FormatDefinitionError: If the adapter has no definition.
            ValueError: If ``deck`` is None.
        """
        self._require_definition()
        return await super().export_deck(deck, format, options)

    async def _parse_input(
        self,
        data: DeckInput,
        options: ParseOptions,
        warnings: list[ParseWarning],
    ) -> list[StandardDeck]:
        definition = self._require_definition()
        content = input_text(data).strip()

        failures = validate_against_rules(content, definition.validation.rules)
        if failures:
            raise ValueError(f"Content validation failed: {', '.join(failures)}")

        values = extract_variables(content, definition)
        missing = [
            v.name for v in definition.variables
            if v.required and values.get(v.name) in (None, "")
        ]
        if missing:
            raise ValueError(f"Missing required variables: {', '.join(missing)}")

        cards = []
        for line in str(values.get("cards") or "").split("\n"):
            match = CARD_LINE.match(line.strip())
            if match:
                cards.append(StandardCard(
                    name=self.normalize_card_name(match.group(2)),
                    quantity=int(match.group(1)),
                    metadata={"template_parsed": True},
                ))

        commander = None
        if values.get("commander"):
            parsed = self.parse_quantity(str(values["commander"]))
            commander = StandardCard(name=parsed.card_name, quantity=1, category="Commander")

        filename = Path(data.name).stem if isinstance(data, DeckFile) else "custom_deck"
        return [StandardDeck(
            name=str(values.get("name") or filename),
            description=values.get("description") or None,
            format=str(values.get("format") or "commander").lower(),
            commander=commander,
            cards=cards,
            metadata=DeckMetadata(
                source=self.name,
                custom_fields={
                    "format_definition": definition.id,
                    "template_variables": {k: v for k, v in values.items() if k != "cards"},
                },
                commander_source=CommanderSource.EXPLICIT if commander else None,
            ),
        )]

    def _serialize(self, deck: StandardDeck, fmt: str, options: ExportOptions) -> tuple[str, str, str]:
        definition = self._require_definition()
        template = options.custom_template or definition.template

        values = {
            "name": deck.name,
            "description": deck.description or "",
            "format": deck.format,
            "author": deck.metadata.author or "",
            "commander": self._format_card(deck.commander) if deck.commander else "",
            "cards": "\n".join(self._format_card(card) for card in deck.cards),
            "sideboard": "\n".join(self._format_card(card) for card in deck.sideboard),
            "maybeboard": "\n".join(self._format_card(card) for card in deck.maybeboard),
        }
        for variable in definition.variables:
            if variable.name not in values and variable.default_value is not None:
                values[variable.name] = str(variable.default_value)

        content = PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)
        filename = f"{safe_filename(deck.name)}.{definition.file_extension}"
        return content, filename, definition.mime_type

    @staticmethod
    def _format_card(card: StandardCard) -> str:
        return f"{card.quantity} {card.name}"


# ============ Factory & Builder ============


class CustomFormatDefinitionBuilder:
    """Fluent builder for CustomFormatDefinition."""

    def __init__(self):
        self._fields: dict[str, Any] = {}
        self._variables: list[CustomFormatVariable] = []
        self._rules: list[ValidationRule] = []

    def set_id(self, format_id: str) -> "CustomFormatDefinitionBuilder":
        self._fields["id"] = format_id
        return self

    def set_name(self, name: str) -> "CustomFormatDefinitionBuilder":
        self._fields["name"] = name
        return self

    def set_description(self, description: str) -> "CustomFormatDefinitionBuilder":
        self._fields["description"] = description
        return self

    def set_file_extension(self, extension: str) -> "CustomFormatDefinitionBuilder":
        self._fields["file_extension"] = extension
        return self

    def set_mime_type(self, mime_type: str) -> "CustomFormatDefinitionBuilder":
        self._fields["mime_type"] = mime_type
        return self

    def set_template(self, template: str) -> "CustomFormatDefinitionBuilder":
        self._fields["template"] = template
        return self

    def add_variable(self, variable: CustomFormatVariable) -> "CustomFormatDefinitionBuilder":
        self._variables.append(variable)
        return self

    def add_validation_rule(self, rule: ValidationRule) -> "CustomFormatDefinitionBuilder":
        self._rules.append(rule)
        return self

    def build(self) -> CustomFormatDefinition:
        """
        Raises:
            FormatDefinitionError: If id, name or template is missing or invalid.
        """
        missing = [key for key in ("id", "name", "template") if not self._fields.get(key)]
        if missing:
            raise FormatDefinitionError(
                "Missing required fields: id, name, and template are required"
            )
        try:
            return CustomFormatDefinition(
                **self._fields,
                variables=list(self._variables),
                validation=CustomFormatValidation(rules=list(self._rules)),
            )
        except PydanticValidationError as e:
            raise FormatDefinitionError(f"Invalid format definition: {e}") from e


class CustomFormatFactory:
    """
    Keeps custom format definitions by id and mints adapters for them.

    Registration may happen while other threads look formats up, so the
    definition map is guarded by a lock.
    """

    def __init__(self):
        self._formats: dict[str, CustomFormatDefinition] = {}
        self._lock = threading.Lock()

    def register_format(self, definition: CustomFormatDefinition) -> None:
        with self._lock:
            replaced = definition.id in self._formats
            self._formats[definition.id] = definition
        logger.info("Registered custom format", format_id=definition.id, replaced=replaced)

    def unregister_format(self, format_id: str) -> bool:
        with self._lock:
            return self._formats.pop(format_id, None) is not None

    def get_format(self, format_id: str) -> Optional[CustomFormatDefinition]:
        with self._lock:
            return self._formats.get(format_id)

    def get_formats(self) -> list[CustomFormatDefinition]:
        with self._lock:
            return list(self._formats.values())

    def create_adapter(self, format_id: str, **kwargs) -> Optional[CustomFormatAdapter]:
        """Adapter for a registered format, or None for unknown ids."""
        definition = self.get_format(format_id)
        if definition is None:
            return None
        return CustomFormatAdapter(definition, **kwargs)

    def clear(self) -> None:
        with self._lock:
            self._formats.clear()

    @staticmethod
    def create_format_builder() -> CustomFormatDefinitionBuilder:
        return CustomFormatDefinitionBuilder()


# Process-wide factory
custom_format_factory = CustomFormatFactory()
