"""Schemas for form definitions, public rendering and submissions."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import AliasChoices, AliasGenerator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


FieldType = Literal[
    "text",
    "email",
    "number",
    "textarea",
    "select",
    "radio",
    "checkbox",
    "date",
    "sangha",
    "file",
    "whatsapp_optin",
    "arratai_optin",
    "readonly_text",
    "source",
]

ConditionOperator = Literal[
    "equals",
    "not_equals",
    "contains",
    "greater_than",
    "less_than",
]

RuleAction = Literal["show", "hide", "enable", "disable"]

CollectionTargetLiteral = Literal["lead", "volunteer"]


class CamelModel(BaseModel):
    """Accepts both snake_case and the camelCase keys existing clients send."""

    model_config = ConfigDict(
        alias_generator=AliasGenerator(validation_alias=to_camel),
        populate_by_name=True,
    )


class ConditionalRule(CamelModel):
    id: str | None = None
    target_field_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("target_field_id", "targetFieldId", "field"),
    )
    operator: ConditionOperator
    value: Any = None
    action: RuleAction = "show"


class FormField(CamelModel):
    id: str = Field(..., min_length=1, max_length=100)
    type: FieldType
    label: str = Field("", max_length=500)
    placeholder: str | None = None
    required: bool = False
    options: list[str] | None = None
    default_value: Any = None
    order: int = 0
    conditional_rules: list[ConditionalRule] = Field(default_factory=list)
    nested_fields: list["FormField"] = Field(default_factory=list)


FormField.model_rebuild()


class FormSection(CamelModel):
    id: str = Field(..., min_length=1, max_length=100)
    title: str = ""
    description: str | None = None
    order: int = 0
    fields: list[FormField] = Field(default_factory=list)
    conditional_rules: list[ConditionalRule] = Field(default_factory=list)


class ConditionalGroupLink(CamelModel):
    field_id: str
    field_value: str
    platform: str
    group_link: str


class FormSettings(CamelModel):
    collection_target: CollectionTargetLiteral = Field(
        "lead", validation_alias=AliasChoices("collection_target", "collectionTarget", "userType")
    )
    form_type: str | None = None  # Generic submission path only
    allow_multiple_responses: bool = True
    max_responses: int | None = Field(None, ge=1)
    custom_slug: str | None = Field(None, max_length=120, pattern=r"^[a-z0-9][a-z0-9_-]*$")
    is_active: bool = True
    accept_payments: bool = False
    payment_amount: float | None = Field(None, ge=0)
    show_group_links: bool = False
    whatsapp_group_link: str | None = None
    arratai_group_link: str | None = None
    conditional_group_links: list[ConditionalGroupLink] = Field(default_factory=list)


class FormSchema(CamelModel):
    """The evaluable part of a form: ordered sections plus settings."""

    sections: list[FormSection] = Field(default_factory=list)
    settings: FormSettings = Field(default_factory=FormSettings)


# =============================================================================
# Admin CRUD
# =============================================================================


class FormCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    internal_name: str | None = Field(None, max_length=200)
    description: str | None = None
    sections: list[FormSection] = Field(default_factory=list)
    theme: dict[str, Any] = Field(default_factory=dict)
    settings: FormSettings = Field(default_factory=FormSettings)


class FormUpdate(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    internal_name: str | None = Field(None, max_length=200)
    description: str | None = None
    sections: list[FormSection] | None = None
    theme: dict[str, Any] | None = None
    settings: FormSettings | None = None


class FormSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    internal_name: str | None
    status: str
    custom_slug: str | None
    created_at: datetime
    updated_at: datetime


class FormRead(FormSummary):
    description: str | None
    sections: list[FormSection]
    theme: dict[str, Any]
    settings: FormSettings
    published_at: datetime | None


class SlugCheckResponse(BaseModel):
    slug: str
    available: bool


# =============================================================================
# Public rendering + visibility
# =============================================================================


class FormStateRead(BaseModel):
    visible_sections: list[str]
    visible_fields: list[str]
    disabled_fields: list[str]


class FormPublicRead(BaseModel):
    id: UUID
    title: str
    description: str | None
    sections: list[FormSection]
    theme: dict[str, Any]
    accept_payments: bool
    payment_amount: float | None
    state: FormStateRead


class VisibilityRequest(CamelModel):
    values: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Submission
# =============================================================================


class SubmittedEntry(CamelModel):
    field_id: str = Field(..., min_length=1)
    value: Any = None


class EnrichedEntry(BaseModel):
    field_id: str
    field_type: str
    field_label: str
    value: Any = None


class PaymentInfo(BaseModel):
    required: bool
    amount: float | None = None


class OptIns(BaseModel):
    whatsapp: bool = False
    arratai: bool = False


class SubmissionResult(BaseModel):
    success: bool = True
    response_id: UUID
    collection: str
    lead_score: int | None = None
    opt_ins: OptIns
    payment: PaymentInfo
    customer_details: dict[str, str]
    show_group_links: bool = False
    whatsapp_group_link: str | None = None
    arratai_group_link: str | None = None
    conditional_group_links: list[ConditionalGroupLink] = Field(default_factory=list)
