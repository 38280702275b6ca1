import uuid
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import (
    ChannelType,
    QuestionType,
    QuotaBehavior,
    SurveyStatus,
    TargetAction,
)


# --- Branch conditions ---
# A closed union with one variant per operator family. Stored as the JSON
# blob in BranchRule.condition.


class ComparisonCondition(BaseModel):
    operator: Literal["equals", "notEquals", "contains", "greaterThan", "lessThan"]
    value: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def stringify_value(cls, v):
        if v is None:
            return ""
        if isinstance(v, bool):
            return "true" if v else "false"
        return str(v)


class OptionSelectedCondition(BaseModel):
    operator: Literal["optionSelected"]
    option_id: Optional[str] = None

    @field_validator("option_id", mode="before")
    @classmethod
    def stringify_option_id(cls, v):
        if v is None or isinstance(v, str):
            return v
        return str(v)


class PresenceCondition(BaseModel):
    operator: Literal["answered", "notAnswered"]


Condition = Annotated[
    Union[ComparisonCondition, OptionSelectedCondition, PresenceCondition],
    Field(discriminator="operator"),
]


# --- Per-type question configuration ---


class TextConfig(BaseModel):
    kind: Literal["text"] = "text"
    placeholder: Optional[str] = None
    regex_pattern: Optional[str] = None


class NumberConfig(BaseModel):
    kind: Literal["number"] = "number"
    placeholder: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("Minimum must not be greater than maximum.")
        return self


class RatingConfig(BaseModel):
    kind: Literal["rating"] = "rating"
    rating_max: int = Field(default=5, ge=2, le=10)


class SliderConfig(BaseModel):
    kind: Literal["slider"] = "slider"
    min: float = 0
    max: float = 100
    step: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min >= self.max:
            raise ValueError("Slider minimum must be less than its maximum.")
        return self


class NpsConfig(BaseModel):
    kind: Literal["nps"] = "nps"
    low_label: Optional[str] = None
    high_label: Optional[str] = None


def _split_csv(v):
    if isinstance(v, str):
        return [part.strip() for part in v.split(",") if part.strip()]
    return v


class ChoiceConfig(BaseModel):
    kind: Literal["choice"] = "choice"
    allow_other: bool = False
    randomize_options: bool = False


class LikertConfig(BaseModel):
    kind: Literal["likert"] = "likert"
    allow_other: bool = False
    randomize_options: bool = False
    scale_labels: List[str] = Field(default_factory=list)

    @field_validator("scale_labels", mode="before")
    @classmethod
    def split_scale_labels(cls, v):
        return _split_csv(v)


class MatrixConfig(BaseModel):
    kind: Literal["matrix"] = "matrix"
    allow_other: bool = False
    randomize_options: bool = False
    columns: List[str] = Field(default_factory=list)

    @field_validator("columns", mode="before")
    @classmethod
    def split_columns(cls, v):
        return _split_csv(v)


class EmptyConfig(BaseModel):
    kind: Literal["none"] = "none"


CONFIG_MODEL_BY_TYPE = {
    QuestionType.SHORT_TEXT: TextConfig,
    QuestionType.LONG_TEXT: TextConfig,
    QuestionType.EMAIL: TextConfig,
    QuestionType.PHONE: TextConfig,
    QuestionType.URL: TextConfig,
    QuestionType.DATE: TextConfig,
    QuestionType.TIME: TextConfig,
    QuestionType.DATE_TIME: TextConfig,
    QuestionType.YES_NO: EmptyConfig,
    QuestionType.NUMBER: NumberConfig,
    QuestionType.RATING: RatingConfig,
    QuestionType.NPS: NpsConfig,
    QuestionType.SLIDER: SliderConfig,
    QuestionType.MULTIPLE_CHOICE: ChoiceConfig,
    QuestionType.CHECKBOXES: ChoiceConfig,
    QuestionType.DROPDOWN: ChoiceConfig,
    QuestionType.MULTI_SELECT_DROPDOWN: ChoiceConfig,
    QuestionType.RANKING: ChoiceConfig,
    QuestionType.LIKERT: LikertConfig,
    QuestionType.MATRIX: MatrixConfig,
    QuestionType.SECTION: EmptyConfig,
    QuestionType.PAGE_BREAK: EmptyConfig,
}


def build_question_config(
    question_type: QuestionType, raw: Optional[Dict[str, Any]]
) -> BaseModel:
    """
    Validate free-form config input against the payload shape of the given
    question type. Raises pydantic.ValidationError on bad input.
    """
    model = CONFIG_MODEL_BY_TYPE[question_type]
    data = dict(raw or {})
    data.pop("kind", None)
    return model.model_validate(data)


# --- Surveys ---


class SurveyCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_anonymous: bool = False

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title is required.")
        return v


class SurveySettingsUpdate(SurveyCreate):
    pass


class SurveyScheduleUpdate(BaseModel):
    open_at: Optional[datetime] = None
    close_at: Optional[datetime] = None
    response_quota: Optional[int] = Field(default=None, ge=1)
    quota_behavior: QuotaBehavior = QuotaBehavior.REJECT


class SurveyRead(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    title: str
    description: Optional[str] = None
    is_anonymous: bool
    status: SurveyStatus
    open_at: Optional[datetime] = None
    close_at: Optional[datetime] = None
    response_quota: Optional[int] = None
    quota_behavior: QuotaBehavior
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# --- Questions and options ---


class QuestionOptionIn(BaseModel):
    id: Optional[uuid.UUID] = None
    text: str
    value: Optional[str] = None
    ordering: int = 0
    is_active: bool = True


class QuestionOptionRead(BaseModel):
    id: uuid.UUID
    text: str
    value: Optional[str] = None
    ordering: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class QuestionCreate(BaseModel):
    text: str = Field(..., min_length=1)
    question_type: QuestionType
    is_required: bool = False
    help_text: Optional[str] = Field(default=None, max_length=500)
    default_value: Optional[str] = Field(default=None, max_length=500)
    config: Optional[Dict[str, Any]] = None
    options: List[QuestionOptionIn] = []


class QuestionUpdate(QuestionCreate):
    pass


class QuestionRead(BaseModel):
    id: uuid.UUID
    survey_id: uuid.UUID
    ordering: int
    text: str
    question_type: QuestionType
    is_required: bool
    help_text: Optional[str] = None
    default_value: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    options: List[QuestionOptionRead] = []

    model_config = ConfigDict(from_attributes=True)


class QuestionReorder(BaseModel):
    question_ids: List[uuid.UUID]


# --- Branch rules ---


class BranchRuleBase(BaseModel):
    condition: Condition
    target_action: TargetAction
    target_question_id: Optional[uuid.UUID] = None
    priority: int = Field(default=1, ge=1)


class BranchRuleCreate(BranchRuleBase):
    source_question_id: uuid.UUID


class BranchRuleUpdate(BranchRuleBase):
    pass


class BranchRuleRead(BaseModel):
    id: int
    survey_id: uuid.UUID
    source_question_id: uuid.UUID
    condition: Dict[str, Any]
    condition_description: Optional[str] = None
    target_action: TargetAction
    target_question_id: Optional[uuid.UUID] = None
    priority: int

    model_config = ConfigDict(from_attributes=True)


# --- Channels ---


class ChannelCreate(BaseModel):
    channel_type: ChannelType = ChannelType.LINK


class ChannelStatusUpdate(BaseModel):
    is_active: bool


class ChannelRead(BaseModel):
    id: uuid.UUID
    survey_id: uuid.UUID
    channel_type: ChannelType
    slug: Optional[str] = None
    full_url: Optional[str] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class ChannelSummary(ChannelRead):
    created_at: Optional[datetime] = None
    response_count: int = 0


# --- Respondent side ---


class RuntimeRuleRead(BaseModel):
    id: int
    source_question_id: uuid.UUID
    condition: Optional[Dict[str, Any]] = None
    target_action: TargetAction
    target_question_id: Optional[uuid.UUID] = None
    priority: int


class RespondSurveyRead(BaseModel):
    survey_id: uuid.UUID
    title: str
    description: Optional[str] = None
    is_anonymous: bool
    channel_id: Optional[uuid.UUID] = None
    questions: List[QuestionRead] = []
    branch_rules: List[RuntimeRuleRead] = []


class FlowStepRequest(BaseModel):
    value: Optional[str] = None
    option_ids: List[str] = []


class FlowStepResponse(BaseModel):
    action: Literal["GoToQuestion", "EndSurvey", "Advance"]
    target_question_id: Optional[uuid.UUID] = None
    next_question_id: Optional[uuid.UUID] = None  # None once the survey ends


class ResponseSubmission(BaseModel):
    survey_id: uuid.UUID
    channel_id: Optional[uuid.UUID] = None
    answers: Dict[uuid.UUID, Optional[str]] = Field(default_factory=dict)
    respondent_email: Optional[str] = Field(default=None, max_length=255)
    idempotency_token: Optional[str] = Field(default=None, max_length=200)


class ResponseSubmissionIn(BaseModel):
    """Request body of the submit endpoint; the survey id comes from the path."""

    channel_id: Optional[uuid.UUID] = None
    answers: Dict[uuid.UUID, Optional[str]] = Field(default_factory=dict)
    respondent_email: Optional[str] = Field(default=None, max_length=255)
    idempotency_token: Optional[str] = Field(default=None, max_length=200)


class ResponseSubmitResult(BaseModel):
    success: bool = True
    response_id: uuid.UUID
    message: str = "Thank you for your response!"


class ErrorResponse(BaseModel):
    success: bool = False
    errors: List[str]
