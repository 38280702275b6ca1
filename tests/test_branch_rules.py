import uuid

import pytest

from survey_backend.crud.crud_branch_rule import (
    build_rule_reads,
    create_rule,
    delete_rule,
    describe_condition,
    get_rule,
    list_rules_for_question,
    list_rules_for_survey,
    update_rule,
)
from survey_backend.exceptions import NotFoundError, PermissionDeniedError, ValidationFailedError
from survey_backend.models import QuestionType, TargetAction
from survey_backend.schemas import BranchRuleCreate, BranchRuleUpdate

QUESTIONS = [
    ("Do you drive?", QuestionType.YES_NO, True),
    ("Which car?", QuestionType.DROPDOWN, False),
    ("Thanks", QuestionType.LONG_TEXT, False),
]


def rule_in(source, condition, action=TargetAction.SKIP_TO, target=None, priority=1):
    return BranchRuleCreate(
        source_question_id=source.id,
        condition=condition,
        target_action=action,
        target_question_id=target.id if target is not None else None,
        priority=priority,
    )


class TestCreate:
    async def test_skip_rule_is_stored(self, db, survey_factory, owner_id):
        survey, (q1, _, q3) = await survey_factory(QUESTIONS)

        rule = await create_rule(
            db, owner_id, rule_in(q1, {"operator": "equals", "value": "No"}, target=q3)
        )

        assert rule.id is not None
        assert rule.survey_id == survey.id
        assert rule.condition == {"operator": "equals", "value": "No"}
        assert rule.target_question_id == q3.id

    async def test_end_survey_clears_target(self, db, survey_factory, owner_id):
        _, (q1, _, q3) = await survey_factory(QUESTIONS)

        rule = await create_rule(
            db,
            owner_id,
            rule_in(q1, {"operator": "answered"}, TargetAction.END_SURVEY, target=q3),
        )

        assert rule.target_question_id is None

    @pytest.mark.parametrize("action", [TargetAction.SKIP_TO, TargetAction.SHOW_QUESTION])
    async def test_navigation_needs_a_target(self, db, survey_factory, owner_id, action):
        _, (q1, _, _) = await survey_factory(QUESTIONS)
        with pytest.raises(ValidationFailedError) as exc_info:
            await create_rule(db, owner_id, rule_in(q1, {"operator": "answered"}, action))
        assert exc_info.value.errors == ["A target question is required for this action."]

    async def test_target_must_be_in_the_same_survey(self, db, survey_factory, owner_id):
        _, (q1, _, _) = await survey_factory(QUESTIONS)
        _, (foreign, _, _) = await survey_factory(QUESTIONS, title="Other")

        with pytest.raises(ValidationFailedError) as exc_info:
            await create_rule(db, owner_id, rule_in(q1, {"operator": "answered"}, target=foreign))
        assert exc_info.value.errors == ["Target question must belong to the same survey."]

    async def test_option_must_belong_to_source(
        self, db, survey_factory, option_factory, owner_id
    ):
        _, (q1, q2, q3) = await survey_factory(QUESTIONS)
        (other_option,) = await option_factory(q2, "Volvo")

        with pytest.raises(ValidationFailedError) as exc_info:
            await create_rule(
                db,
                owner_id,
                rule_in(q1, {"operator": "optionSelected", "option_id": str(other_option.id)}, target=q3),
            )
        assert exc_info.value.errors == ["Selected option must belong to the source question."]

    async def test_option_of_source_is_accepted(
        self, db, survey_factory, option_factory, owner_id
    ):
        _, (_, q2, q3) = await survey_factory(QUESTIONS)
        (volvo,) = await option_factory(q2, "Volvo")

        rule = await create_rule(
            db,
            owner_id,
            rule_in(q2, {"operator": "optionSelected", "option_id": str(volvo.id)}, target=q3),
        )
        reads = await build_rule_reads(db, [rule])
        assert reads[0].condition_description == "Option 'Volvo' is selected"

    async def test_unknown_source(self, db, owner_id):
        payload = BranchRuleCreate(
            source_question_id=uuid.uuid4(),
            condition={"operator": "answered"},
            target_action=TargetAction.END_SURVEY,
        )
        with pytest.raises(NotFoundError):
            await create_rule(db, owner_id, payload)

    async def test_viewer_cannot_create(
        self, db, survey_factory, collaborator_factory
    ):
        survey, (q1, _, q3) = await survey_factory(QUESTIONS)
        viewer_id = await collaborator_factory(survey, "Viewer")
        with pytest.raises(PermissionDeniedError):
            await create_rule(db, viewer_id, rule_in(q1, {"operator": "answered"}, target=q3))


async def test_rules_are_listed_by_priority_then_insertion(
    db, survey_factory, rule_factory
):
    survey, (q1, q2, q3) = await survey_factory(QUESTIONS)
    late = await rule_factory(q1, {"operator": "answered"}, target=q3, priority=5)
    tie_first = await rule_factory(q1, {"operator": "notAnswered"}, target=q2, priority=1)
    tie_second = await rule_factory(q1, {"operator": "answered"}, target=q2, priority=1)
    other = await rule_factory(q2, {"operator": "answered"}, TargetAction.END_SURVEY)

    by_question = await list_rules_for_question(db, q1.id)
    assert [r.id for r in by_question] == [tie_first.id, tie_second.id, late.id]

    by_survey = await list_rules_for_survey(db, survey.id)
    assert {r.id for r in by_survey} == {late.id, tie_first.id, tie_second.id, other.id}
    q1_rules = [r.id for r in by_survey if r.source_question_id == q1.id]
    assert q1_rules == [tie_first.id, tie_second.id, late.id]


async def test_update_and_delete(db, survey_factory, rule_factory, owner_id):
    _, (q1, q2, q3) = await survey_factory(QUESTIONS)
    rule = await rule_factory(q1, {"operator": "answered"}, target=q2)
    rule_id = rule.id

    updated = await update_rule(
        db,
        rule_id,
        owner_id,
        BranchRuleUpdate(
            condition={"operator": "lessThan", "value": "18"},
            target_action=TargetAction.SHOW_QUESTION,
            target_question_id=q3.id,
            priority=3,
        ),
    )
    assert updated.condition == {"operator": "lessThan", "value": "18"}
    assert updated.target_question_id == q3.id
    assert updated.priority == 3

    await delete_rule(db, rule_id, owner_id)
    with pytest.raises(NotFoundError):
        await get_rule(db, rule_id)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ({"operator": "equals", "value": "Yes"}, "Answer equals 'Yes'"),
        ({"operator": "notEquals", "value": "No"}, "Answer does not equal 'No'"),
        ({"operator": "greaterThan", "value": 3}, "Answer is greater than '3'"),
        ({"operator": "answered"}, "Answer is given"),
        ({"operator": "notAnswered"}, "Answer is empty"),
        ({"operator": "optionSelected", "option_id": "abc"}, "Option 'abc' is selected"),
        ("{broken", "Invalid condition"),
    ],
)
def test_describe_condition(raw, expected):
    assert describe_condition(raw) == expected
