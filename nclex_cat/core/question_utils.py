"""
Utility functions for working with Item models and schemas.
"""

from typing import List, Sequence, Union

from nclex_cat.models.models import Item, ItemType, NCLEXCategory
from nclex_cat.schemas.exam_sessions import ExamItemResponse

SelectedAnswer = Union[str, Sequence[str]]


def normalize_answer(selected_answer: SelectedAnswer) -> List[str]:
    """Return the submitted answer as a list of stripped option keys."""
    if isinstance(selected_answer, str):
        values = [selected_answer]
    else:
        values = list(selected_answer)
    return [str(v).strip() for v in values if str(v).strip()]


def is_answer_correct(item: Item, selected_answer: SelectedAnswer) -> bool:
    """
    Key a candidate's answer against the item.

    - multiple_choice: exactly one answer, equal to the single key
    - select_all: the same set of keys, no more and no fewer
    - ordered_response: the same keys in the same order

    Comparison of option keys is case-insensitive.
    """
    answers = [a.upper() for a in normalize_answer(selected_answer)]
    correct = [str(c).strip().upper() for c in (item.correct_answers or [])]
    if not answers or not correct:
        return False

    item_type = ItemType(item.item_type)
    if item_type == ItemType.MULTIPLE_CHOICE:
        return len(answers) == 1 and answers[0] == correct[0]
    if item_type == ItemType.SELECT_ALL:
        return len(answers) == len(correct) and set(answers) == set(correct)
    if item_type == ItemType.ORDERED_RESPONSE:
        return answers == correct
    return set(answers) == set(correct)


def item_to_response(item: Item, sequence: int) -> ExamItemResponse:
    """
    Convert an Item model to the candidate-facing schema.

    The answer key and rationale are never included. Options stored as a
    ``{key: text}`` dict are converted to the list form.

    Args:
        item: The Item model instance to convert
        sequence: 1-based position of the item in the exam
    """
    options = item.options or []
    if isinstance(options, dict):
        options = [{"key": key, "text": options[key]} for key in sorted(options.keys())]

    category = NCLEXCategory(item.category)
    return ExamItemResponse.model_validate(
        {
            "id": item.id,
            "category": category.value,
            "category_name": category.display_name,
            "item_type": ItemType(item.item_type).value,
            "stem": item.stem,
            "options": options,
            "sequence": sequence,
        }
    )
