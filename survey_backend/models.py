import enum
import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Boolean,
    JSON,
    Numeric,
    ForeignKey,
    Index,
    UniqueConstraint,
    Uuid,
    Enum,
    TypeDecorator,
)
from sqlalchemy.orm import relationship
from .core.timeutils import ensure_utc, utcnow
from .database import Base


class UTCDateTime(TypeDecorator):
    """DateTime that is written as UTC and always read back timezone-aware."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return ensure_utc(value)

    def process_result_value(self, value, dialect):
        return ensure_utc(value)


class SurveyStatus(str, enum.Enum):
    DRAFT = "Draft"
    PUBLISHED = "Published"
    CLOSED = "Closed"


class QuotaBehavior(str, enum.Enum):
    REJECT = "Reject"  # further submissions are refused
    CLOSE_SURVEY = "CloseSurvey"  # the response that fills the quota closes the survey


class QuestionType(str, enum.Enum):
    SHORT_TEXT = "ShortText"
    LONG_TEXT = "LongText"
    EMAIL = "Email"
    PHONE = "Phone"
    URL = "Url"
    NUMBER = "Number"
    DATE = "Date"
    TIME = "Time"
    DATE_TIME = "DateTime"
    YES_NO = "YesNo"
    RATING = "Rating"
    NPS = "NPS"
    SLIDER = "Slider"
    MULTIPLE_CHOICE = "MultipleChoice"
    CHECKBOXES = "Checkboxes"
    DROPDOWN = "Dropdown"
    MULTI_SELECT_DROPDOWN = "MultiSelectDropdown"
    RANKING = "Ranking"
    LIKERT = "Likert"
    MATRIX = "Matrix"
    SECTION = "Section"
    PAGE_BREAK = "PageBreak"


CHOICE_QUESTION_TYPES = frozenset(
    {
        QuestionType.MULTIPLE_CHOICE,
        QuestionType.CHECKBOXES,
        QuestionType.DROPDOWN,
        QuestionType.MULTI_SELECT_DROPDOWN,
        QuestionType.RANKING,
        QuestionType.LIKERT,
        QuestionType.MATRIX,
    }
)

# Layout elements: never answered, never required.
LAYOUT_QUESTION_TYPES = frozenset({QuestionType.SECTION, QuestionType.PAGE_BREAK})

NUMERIC_QUESTION_TYPES = frozenset(
    {QuestionType.NUMBER, QuestionType.RATING, QuestionType.NPS, QuestionType.SLIDER}
)
DATE_QUESTION_TYPES = frozenset({QuestionType.DATE, QuestionType.DATE_TIME})


class TargetAction(str, enum.Enum):
    SKIP_TO = "SkipTo"
    END_SURVEY = "EndSurvey"
    SHOW_QUESTION = "ShowQuestion"


class ResponseStatus(str, enum.Enum):
    COMPLETED = "Completed"


class ChannelType(str, enum.Enum):
    LINK = "Link"
    QR_CODE = "QrCode"
    EMAIL = "Email"


class Survey(Base):
    __tablename__ = "surveys"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_anonymous = Column(Boolean, nullable=False, default=False)
    status = Column(Enum(SurveyStatus), nullable=False, default=SurveyStatus.DRAFT)

    # Stored as UTC.
    open_at = Column(UTCDateTime(timezone=True), nullable=True)
    close_at = Column(UTCDateTime(timezone=True), nullable=True)

    response_quota = Column(Integer, nullable=True)
    quota_behavior = Column(
        Enum(QuotaBehavior), nullable=False, default=QuotaBehavior.REJECT
    )

    created_at = Column(UTCDateTime(timezone=True), default=utcnow)
    updated_at = Column(
        UTCDateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    questions = relationship(
        "Question",
        back_populates="survey",
        order_by="Question.ordering",
        cascade="all, delete-orphan",
    )
    branch_rules = relationship(
        "BranchRule", back_populates="survey", cascade="all, delete-orphan"
    )
    channels = relationship("SurveyChannel", back_populates="survey")
    responses = relationship("SurveyResponse", back_populates="survey")


class Question(Base):
    __tablename__ = "questions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    survey_id = Column(Uuid, ForeignKey("surveys.id"), nullable=False, index=True)
    ordering = Column(Integer, nullable=False)  # 1-based, dense per survey
    text = Column(Text, nullable=False)
    question_type = Column(Enum(QuestionType), nullable=False)
    is_required = Column(Boolean, nullable=False, default=False)
    help_text = Column(String(500), nullable=True)
    default_value = Column(String(500), nullable=True)
    config = Column(JSON, nullable=True)  # per-type settings, see schemas.CONFIG_MODEL_BY_TYPE

    created_at = Column(UTCDateTime(timezone=True), default=utcnow)
    updated_at = Column(
        UTCDateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    survey = relationship("Survey", back_populates="questions")
    options = relationship(
        "QuestionOption",
        back_populates="question",
        order_by="QuestionOption.ordering",
        cascade="all, delete-orphan",
    )


class QuestionOption(Base):
    __tablename__ = "question_options"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    question_id = Column(Uuid, ForeignKey("questions.id"), nullable=False, index=True)
    ordering = Column(Integer, nullable=False)
    text = Column(String(500), nullable=False)
    value = Column(String(200), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    question = relationship("Question", back_populates="options")


class BranchRule(Base):
    __tablename__ = "branch_rules"
    __table_args__ = (
        Index("ix_branch_rules_source_priority", "source_question_id", "priority"),
    )

    # Integer key: ties on priority are broken by insertion order.
    id = Column(Integer, primary_key=True, autoincrement=True)
    survey_id = Column(Uuid, ForeignKey("surveys.id"), nullable=False, index=True)
    source_question_id = Column(
        Uuid, ForeignKey("questions.id"), nullable=False, index=True
    )
    condition = Column(JSON, nullable=False)  # {"operator": ..., "value": ..., "option_id": ...}
    target_action = Column(Enum(TargetAction), nullable=False)
    target_question_id = Column(Uuid, ForeignKey("questions.id"), nullable=True)
    priority = Column(Integer, nullable=False, default=1)
    created_at = Column(UTCDateTime(timezone=True), default=utcnow)

    survey = relationship("Survey", back_populates="branch_rules")
    source_question = relationship("Question", foreign_keys=[source_question_id])
    target_question = relationship("Question", foreign_keys=[target_question_id])


class SurveyChannel(Base):
    __tablename__ = "survey_channels"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    survey_id = Column(Uuid, ForeignKey("surveys.id"), nullable=False, index=True)
    channel_type = Column(Enum(ChannelType), nullable=False, default=ChannelType.LINK)
    slug = Column(String(200), nullable=True, unique=True, index=True)
    full_url = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime(timezone=True), default=utcnow)

    survey = relationship("Survey", back_populates="channels")


class SurveyResponse(Base):
    __tablename__ = "survey_responses"
    __table_args__ = (
        # Duplicate submissions from retries must never create two rows.
        UniqueConstraint(
            "survey_id", "idempotency_token", name="uq_survey_responses_idempotency"
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    survey_id = Column(Uuid, ForeignKey("surveys.id"), nullable=False, index=True)
    channel_id = Column(Uuid, ForeignKey("survey_channels.id"), nullable=True)
    status = Column(
        Enum(ResponseStatus), nullable=False, default=ResponseStatus.COMPLETED
    )
    submitted_at = Column(UTCDateTime(timezone=True), nullable=True)
    anon_token = Column(String(200), nullable=True)
    respondent_email = Column(String(255), nullable=True)
    respondent_ip = Column(String(64), nullable=True)
    idempotency_token = Column(String(200), nullable=True)
    is_locked = Column(Boolean, nullable=False, default=False)

    survey = relationship("Survey", back_populates="responses")
    answers = relationship(
        "ResponseAnswer", back_populates="response", cascade="all, delete-orphan"
    )


class ResponseAnswer(Base):
    __tablename__ = "response_answers"

    response_id = Column(Uuid, ForeignKey("survey_responses.id"), primary_key=True)
    question_id = Column(Uuid, ForeignKey("questions.id"), primary_key=True)
    answer_text = Column(Text, nullable=True)
    numeric_value = Column(Numeric(18, 4), nullable=True)
    date_value = Column(UTCDateTime(timezone=True), nullable=True)
    updated_at = Column(UTCDateTime(timezone=True), default=utcnow)

    response = relationship("SurveyResponse", back_populates="answers")


class SurveyCollaborator(Base):
    __tablename__ = "survey_collaborators"

    survey_id = Column(Uuid, ForeignKey("surveys.id"), primary_key=True)
    user_id = Column(Uuid, primary_key=True)
    role = Column(String(50), nullable=False)  # Viewer | Editor
    granted_by = Column(Uuid, nullable=True)
    created_at = Column(UTCDateTime(timezone=True), default=utcnow)


class ActivityLog(Base):
    __tablename__ = "activity_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid, nullable=True)
    survey_id = Column(Uuid, ForeignKey("surveys.id"), nullable=True, index=True)
    response_id = Column(Uuid, ForeignKey("survey_responses.id"), nullable=True)
    action_type = Column(String(100), nullable=False)
    action_detail = Column(Text, nullable=True)
    created_at = Column(UTCDateTime(timezone=True), default=utcnow)
