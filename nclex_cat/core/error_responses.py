"""
Standardized error response messages and builders.

Error Message Format Guidelines:
- Use sentence case (capitalize first letter only)
- End with a period for complete sentences
- Include relevant IDs in parentheses when helpful for debugging: "(ID: 123)"
- Use "Please try again." for retryable conditions

Usage:
    from nclex_cat.core.error_responses import ErrorMessages, raise_bad_request

    raise_bad_request(ErrorMessages.EMPTY_ANSWER)

Engine errors (CATError subclasses) are not raised from endpoints directly;
the application's exception handler converts them with cat_error_to_http().
"""

from typing import Dict, NoReturn, Type

from fastapi import HTTPException, status

from nclex_cat.core.cat.errors import (
    CATError,
    ConcurrentModification,
    InvalidExamConfig,
    InvalidSessionState,
    InvalidTestPlan,
    ItemBankUnavailable,
    ItemMismatch,
    SessionNotFound,
)


class ErrorMessages:
    """Centralized error message constants and templates.

    Naming Convention:
    - Constants: SCREAMING_SNAKE_CASE for static messages
    - Methods: snake_case for templates that accept parameters
    """

    # ==========================================================================
    # Not Found Errors (404)
    # ==========================================================================
    EXAM_SESSION_NOT_FOUND = "Exam session not found."

    # ==========================================================================
    # Conflict Errors (409)
    # ==========================================================================
    CONCURRENT_MODIFICATION = (
        "The exam session was modified by another request. "
        "Please reload the session and try again."
    )

    # ==========================================================================
    # Bad Request Errors (400)
    # ==========================================================================
    EMPTY_ANSWER = "Selected answer cannot be empty."

    # ==========================================================================
    # Service Unavailable Errors (503)
    # ==========================================================================
    ITEM_BANK_UNAVAILABLE = (
        "The item bank is temporarily unavailable. Please try again."
    )

    # ==========================================================================
    # Template Methods for Dynamic Messages
    # ==========================================================================
    @staticmethod
    def invalid_exam_config(reason: str) -> str:
        """Message for rejected exam configuration overrides."""
        return f"Invalid exam configuration: {reason}"


# Status code for each engine error family, most specific first
CAT_ERROR_STATUS: Dict[Type[CATError], int] = {
    SessionNotFound: status.HTTP_404_NOT_FOUND,
    InvalidSessionState: status.HTTP_409_CONFLICT,
    ConcurrentModification: status.HTTP_409_CONFLICT,
    ItemMismatch: status.HTTP_400_BAD_REQUEST,
    ItemBankUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    InvalidTestPlan: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidExamConfig: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def cat_error_to_http(exc: CATError) -> HTTPException:
    """
    Build the HTTPException for an engine error.

    Storage failures get a generic message; everything else reports the
    error's own message, without the logging context.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in CAT_ERROR_STATUS.items():
        if isinstance(exc, error_type):
            status_code = code
            break

    if isinstance(exc, ItemBankUnavailable):
        detail = ErrorMessages.ITEM_BANK_UNAVAILABLE
    elif isinstance(exc, ConcurrentModification):
        detail = ErrorMessages.CONCURRENT_MODIFICATION
    elif isinstance(exc, SessionNotFound):
        detail = ErrorMessages.EXAM_SESSION_NOT_FOUND
    elif isinstance(exc, (InvalidTestPlan, InvalidExamConfig)):
        detail = ErrorMessages.invalid_exam_config(exc.message)
    else:
        detail = exc.message

    headers = None
    if status_code == status.HTTP_503_SERVICE_UNAVAILABLE:
        headers = {"Retry-After": "1"}
    return HTTPException(status_code=status_code, detail=detail, headers=headers)


# ==============================================================================
# HTTPException Builder Functions
# ==============================================================================


def raise_bad_request(detail: str) -> NoReturn:
    """Raise a 400 Bad Request exception.

    Args:
        detail: User-facing error message

    Raises:
        HTTPException: 400 Bad Request
    """
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=detail,
    )
