"""
Tests for the failure envelope.

Every failure a ledger operation can raise maps to exactly one outcome,
kind and status code, and every response passes through
finalize_response().
"""

import pytest

from numberzz.models.failure import (
    PERMISSION_REASONS,
    REASON_MESSAGES,
    STANDARD_MESSAGES,
    ApiResponse,
    CollaboratorTimeout,
    CollaboratorUnavailable,
    FailureDetail,
    FailureKind,
    OutcomeType,
    PreconditionFailed,
    Reason,
    UserCancelled,
    ValidationFailed,
    create_success,
    create_unknown_failure,
    finalize_response,
    is_finalized,
)


class TestFinalizeResponse:
    """Tests for the finalize_response authority boundary."""

    def test_success_response_is_finalized(self) -> None:
        response = ApiResponse(outcome=OutcomeType.SUCCESS, data={"key": "value"})
        finalized = finalize_response(response)

        assert is_finalized(finalized)
        assert finalized.outcome == OutcomeType.SUCCESS

    def test_unfinalized_response_not_marked(self) -> None:
        """Responses that bypass the boundary are detectable."""
        response = ApiResponse(outcome=OutcomeType.SUCCESS, data={"key": "value"})

        assert not is_finalized(response)

    def test_success_with_failure_raises(self) -> None:
        response = ApiResponse(
            outcome=OutcomeType.SUCCESS,
            data={"key": "value"},
            failure=FailureDetail(kind=FailureKind.UNKNOWN, message="oops"),
        )

        with pytest.raises(ValueError, match="must not have failure"):
            finalize_response(response)

    def test_failure_without_details_raises(self) -> None:
        response = ApiResponse(outcome=OutcomeType.REFUSAL, failure=None)

        with pytest.raises(ValueError, match="must have failure details"):
            finalize_response(response)

    def test_create_success(self) -> None:
        response = create_success({"id": "42"})

        assert is_finalized(response)
        assert response.data == {"id": "42"}


class TestUnknownFailure:
    def test_uses_standard_message(self) -> None:
        response = create_unknown_failure(ValueError("secret internals"))

        assert response.outcome == OutcomeType.UNKNOWN_FAILURE
        assert response.failure is not None
        assert response.failure.message == STANDARD_MESSAGES[OutcomeType.UNKNOWN_FAILURE]

    def test_exposes_only_exception_type(self) -> None:
        response = create_unknown_failure(KeyError("secret internals"))

        assert response.failure is not None
        assert response.failure.detail == "KeyError"
        assert "secret" not in response.model_dump_json()


class TestPreconditionFailed:
    def test_every_reason_has_a_message(self) -> None:
        assert set(REASON_MESSAGES) == set(Reason)

    @pytest.mark.parametrize("reason", list(Reason))
    def test_reason_survives_into_envelope(self, reason: Reason) -> None:
        """A refusal is never collapsed into a generic failure."""
        response = PreconditionFailed(reason, detail="42").to_response()

        assert is_finalized(response)
        assert response.outcome == OutcomeType.REFUSAL
        assert response.failure is not None
        assert response.failure.kind == FailureKind.PRECONDITION_FAILED
        assert response.failure.reason == reason
        assert response.failure.detail == "42"

    def test_status_codes(self) -> None:
        assert PreconditionFailed(Reason.NOT_FOUND).status_code == 404
        assert PreconditionFailed(Reason.ALREADY_OWNED).status_code == 409
        for reason in PERMISSION_REASONS:
            assert PreconditionFailed(reason).status_code == 403

    def test_serialized_reason_code(self) -> None:
        body = PreconditionFailed(Reason.ALREADY_CLAIMED).to_response().model_dump(mode="json")

        assert body["failure"]["reason"] == "already_claimed"


class TestOtherFailures:
    def test_validation(self) -> None:
        error = ValidationFailed("Price must be positive", detail="'0'")
        response = error.to_response()

        assert error.status_code == 400
        assert response.outcome == OutcomeType.KNOWN_FAILURE
        assert response.failure is not None
        assert response.failure.kind == FailureKind.INVALID_INPUT
        assert response.failure.reason is None

    def test_unavailable(self) -> None:
        error = CollaboratorUnavailable("wallet")

        assert error.status_code == 503
        assert error.kind == FailureKind.SERVICE_UNAVAILABLE
        assert "wallet" in error.message

    def test_timeout_is_a_kind_of_unavailable(self) -> None:
        """Callers handling unavailability also handle timeouts."""
        error = CollaboratorTimeout("store", 2.0)

        assert isinstance(error, CollaboratorUnavailable)
        assert error.kind == FailureKind.TIMEOUT
        assert error.status_code == 504
        assert error.detail == "no response after 2.0s"

    def test_user_cancelled_is_not_an_error_of_ours(self) -> None:
        response = UserCancelled(detail="User rejected the request.").to_response()

        assert response.outcome == OutcomeType.REFUSAL
        assert response.failure is not None
        assert response.failure.kind == FailureKind.USER_CANCELLED
