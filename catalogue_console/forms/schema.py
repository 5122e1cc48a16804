"""Form schema model.

A form schema is a tree: sections hold fields, choice fields hold options and
credential fields hold a credential configuration with an optional predicate
on one attribute. The tree is stored as JSON on the form row; these models
validate it on the way in and normalise legacy spellings.
"""

import uuid
from typing import Any, Literal, Optional, Union

import pydantic
from pydantic import Field, field_validator, model_validator

from catalogue_console.catalogue.models import CamelModel
from catalogue_console.store.errors import ValidationError

CREDENTIAL_FIELD = "verifiable-credential"
LEGACY_CREDENTIAL_FIELD = "verified-credential"

FieldType = Literal[
    "text", "email", "phone", "number", "date", "textarea",
    "select", "radio", "checkbox", "verifiable-credential",
]
PredicateOperator = Literal["==", "!=", ">=", "<=", ">", "<"]

DEFAULT_SUCCESS_SCREEN = {
    "title": "Thank you!",
    "content": "Your form has been submitted successfully.",
}


class Predicate(CamelModel):
    """A single comparison the presented attribute must satisfy."""

    operator: PredicateOperator
    value: Union[bool, int, float, str]


class CredentialConfig(CamelModel):
    source: Literal["vct-library", "catalogue"] = "vct-library"
    vct_library_id: Optional[str] = None
    credential_library_id: Optional[str] = None
    schema_id: Optional[str] = None
    cred_def_id: Optional[str] = None
    required_attributes: list[str] = Field(default_factory=list)
    attribute_path: Optional[str] = None
    predicate: Optional[Predicate] = None
    accepted_issuers: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _predicate_needs_attribute(self) -> "CredentialConfig":
        if self.predicate is not None and not self.attribute_path:
            raise ValueError("A predicate requires an attributePath")
        return self


class FieldValidation(CamelModel):
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None


class FieldOption(CamelModel):
    label: str
    value: str


class FormField(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: FieldType = "text"
    label: str = ""
    name: str = ""  # JSON key; dot notation nests ("eligibility.residency_proof")
    description: Optional[str] = None
    placeholder: Optional[str] = None
    required: bool = False
    validation: Optional[FieldValidation] = None
    options: Optional[list[FieldOption]] = None
    credential_config: Optional[CredentialConfig] = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: Any) -> Any:
        if value == LEGACY_CREDENTIAL_FIELD:
            return CREDENTIAL_FIELD
        return value

    @model_validator(mode="after")
    def _credential_config_matches_type(self) -> "FormField":
        if self.type == CREDENTIAL_FIELD:
            if self.credential_config is None:
                self.credential_config = CredentialConfig()
        else:
            self.credential_config = None
        return self

    @property
    def is_credential(self) -> bool:
        return self.type == CREDENTIAL_FIELD


class FormSection(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str = "New Section"
    description: Optional[str] = None
    fields: list[FormField] = Field(default_factory=list)


class FormScreen(CamelModel):
    title: str = ""
    content: str = ""  # Markdown


class FormSchema(CamelModel):
    sections: list[FormSection] = Field(default_factory=list)
    info_screen: Optional[FormScreen] = None
    success_screen: FormScreen = Field(
        default_factory=lambda: FormScreen(**DEFAULT_SUCCESS_SCREEN)
    )

    @model_validator(mode="after")
    def _unique_ids(self) -> "FormSchema":
        section_ids = [s.id for s in self.sections]
        if len(section_ids) != len(set(section_ids)):
            raise ValueError("Section ids must be unique within a form")
        field_ids = [f.id for s in self.sections for f in s.fields]
        if len(field_ids) != len(set(field_ids)):
            raise ValueError("Field ids must be unique within a form")
        return self

    def fields(self) -> list[FormField]:
        return [f for s in self.sections for f in s.fields]

    def to_document(self) -> dict[str, Any]:
        """JSON document as stored on the form row (camelCase, nulls omitted)."""
        document = self.model_dump(by_alias=True, exclude_none=True)
        document["infoScreen"] = (
            self.info_screen.model_dump(by_alias=True) if self.info_screen else None
        )
        return document


def parse_schema(data: Any) -> FormSchema:
    """Validate a schema document.

    Raises:
        ValidationError: With the first problem found
    """
    if isinstance(data, FormSchema):
        return data
    try:
        return FormSchema.model_validate(data)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(p) for p in first["loc"])
        message = first["msg"].removeprefix("Value error, ")
        raise ValidationError(
            f"Invalid form schema: {message}" + (f" ({location})" if location else "")
        ) from e


def default_schema() -> FormSchema:
    """Schema for a new form: one empty section and the stock success screen."""
    return FormSchema(sections=[FormSection(title="Section 1")])


def migrate_field_types(document: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    """Rename legacy ``verified-credential`` fields in a stored schema document.

    Returns:
        Tuple of (document, changed). The input is not mutated.
    """
    changed = False
    sections = []
    for section in document.get("sections") or []:
        fields = []
        for field in section.get("fields") or []:
            if field.get("type") == LEGACY_CREDENTIAL_FIELD:
                field = {**field, "type": CREDENTIAL_FIELD}
                changed = True
            fields.append(field)
        sections.append({**section, "fields": fields})
    if not changed:
        return document, False
    return {**document, "sections": sections}, True


def unflatten_form_data(flat: dict[str, Any]) -> dict[str, Any]:
    """``{"a.b": 1}`` -> ``{"a": {"b": 1}}``. Later keys win on conflicts."""
    result: dict[str, Any] = {}
    for key, value in flat.items():
        *parents, leaf = key.split(".")
        current = result
        for part in parents:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]
        current[leaf] = value
    return result

