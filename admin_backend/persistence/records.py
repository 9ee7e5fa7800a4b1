"""
Entity records shared by every persistence backend.

Adapters map engine-native rows/documents into these dataclasses through
``from_mapping`` so callers always see the same shape, with missing or null
fields replaced by the defaults declared here.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Type, TypeVar, Union

R = TypeVar("R", bound="Record")


def _relation(record_type: str, foreign_key: str):
    return field(
        default=None,
        metadata={"relation": record_type, "foreign_key": foreign_key},
    )


class Record:
    """Mixin with the mapping helpers every entity dataclass needs."""

    immutable_fields: ClassVar[Tuple[str, ...]] = ("id", "public_id", "created_at")

    @classmethod
    def column_fields(cls) -> list[str]:
        return [
            f.name
            for f in dataclasses.fields(cls)
            if "relation" not in f.metadata
        ]

    @classmethod
    def relation_fields(cls) -> Dict[str, str]:
        """Map relation name -> foreign key field."""
        return {
            f.name: f.metadata["foreign_key"]
            for f in dataclasses.fields(cls)
            if "relation" in f.metadata
        }

    @classmethod
    def has_field(cls, name: str) -> bool:
        return name in cls.column_fields()

    @classmethod
    def field_default(cls, name: str) -> Any:
        for f in dataclasses.fields(cls):
            if f.name != name:
                continue
            if f.default is not dataclasses.MISSING:
                return f.default
            if f.default_factory is not dataclasses.MISSING:
                return f.default_factory()
        return None

    @classmethod
    def defaults(cls) -> Dict[str, Any]:
        return {name: cls.field_default(name) for name in cls.column_fields()}

    @classmethod
    def from_mapping(cls: Type[R], data: Mapping[str, Any]) -> R:
        values = {}
        for name in cls.column_fields():
            value = data.get(name)
            values[name] = cls.field_default(name) if value is None else value
        return cls(**values)

    def as_dict(self) -> dict:
        payload = {name: getattr(self, name) for name in self.column_fields()}
        for name in self.relation_fields():
            related = getattr(self, name)
            if related is not None:
                payload[name] = related.as_dict()
        return payload


class RecordType(str, Enum):
    STRING = "STRING"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    FILE = "FILE"

    @classmethod
    def infer(cls, value: Any) -> "RecordType":
        if isinstance(value, bool):
            return cls.BOOLEAN
        if isinstance(value, (int, float)):
            return cls.NUMBER
        return cls.STRING

    def serialize(self, value: Any) -> str:
        if self is RecordType.BOOLEAN:
            if isinstance(value, str):
                return "true" if value.strip().lower() in ("true", "1", "yes") else "false"
            return "true" if value else "false"
        return "" if value is None else str(value)

    def parse(self, raw: str) -> Union[str, int, float, bool]:
        if self is RecordType.BOOLEAN:
            return raw.strip().lower() == "true"
        if self is RecordType.NUMBER:
            try:
                number = float(raw)
            except (TypeError, ValueError):
                return raw
            return int(number) if number.is_integer() else number
        return raw


@dataclass
class Language(Record):
    id: str = ""
    public_id: str = ""
    name: str = ""
    folder: str = ""
    iso2: str = ""
    iso3: str = ""
    flag_image: str = ""
    direction: str = "ltr"
    status: bool = True
    is_default: bool = False
    created_at: float = 0.0
    updated_at: float = 0.0


@dataclass
class DropdownOption(Record):
    id: str = ""
    public_id: str = ""
    unique_code: int = 0
    name: str = ""
    dropdown_type: str = ""
    language_id: str = ""
    status: bool = True
    use_count: int = 0
    created_at: float = 0.0
    updated_at: float = 0.0
    language: Optional[Language] = _relation("Language", "language_id")


@dataclass
class Slider(Record):
    id: str = ""
    public_id: str = ""
    unique_code: int = 0
    slider_image: str = ""
    title: str = ""
    description: str = ""
    button_title: str = ""
    button_link: str = ""
    custom_color: bool = False
    title_color: str = "#000000"
    description_color: str = "#000000"
    button_title_color: str = "#FFFFFF"
    button_background: str = "#007BFF"
    description_two: str = ""
    button_title_two: str = ""
    button_link_two: str = ""
    description_two_color: str = "#666666"
    button_two_color: str = "#FFFFFF"
    button_background_two: str = "#28A745"
    status: bool = True
    language_id: str = ""
    created_at: float = 0.0
    updated_at: float = 0.0
    language: Optional[Language] = _relation("Language", "language_id")


@dataclass
class Setting(Record):
    id: str = ""
    group_type: str = ""
    key: str = ""
    value: str = ""
    record_type: str = RecordType.STRING.value
    created_at: float = 0.0
    updated_at: float = 0.0

    @property
    def typed_value(self) -> Union[str, int, float, bool]:
        return RecordType(self.record_type).parse(self.value)

    @property
    def is_file(self) -> bool:
        return self.record_type == RecordType.FILE.value

    def as_dict(self) -> dict:
        payload = super().as_dict()
        payload["value"] = self.typed_value
        return payload
