"""
Tests for submission error classification.

Test plan:
- SubmissionError passes through unchanged
- Wallet rejection strings and EIP-1193 code 4001 → USER_REJECTED
- Simulation / execution reverted → SIMULATION_FAILED
- httpx errors → BACKEND_UNAVAILABLE
- Anything else → UNKNOWN with the original message
- DeploymentNotFound carries chain id and code
"""

import httpx
import pytest

from xchain_flows.errors import (
    DeploymentNotFound,
    SubmissionError,
    SubmissionErrorCode,
    UserRejected,
    XChainError,
    classify_submission_error,
)


class ProviderError(Exception):
    def __init__(self, message: str, code: int) -> None:
        super().__init__(message)
        self.code = code


class TestClassify:
    def test_passthrough(self) -> None:
        err = UserRejected()
        assert classify_submission_error(err) is err

    @pytest.mark.parametrize(
        "message",
        [
            "User rejected the request.",
            "MetaMask Tx Signature: User denied transaction signature.",
        ],
    )
    def test_user_rejected_strings(self, message: str) -> None:
        result = classify_submission_error(RuntimeError(message))
        assert result.code is SubmissionErrorCode.USER_REJECTED
        assert str(result) == message

    def test_eip1193_code(self) -> None:
        result = classify_submission_error(ProviderError("nope", 4001))
        assert result.code is SubmissionErrorCode.USER_REJECTED

    def test_simulation_failed(self) -> None:
        result = classify_submission_error(RuntimeError("execution reverted: ERC20: insufficient allowance"))
        assert result.code is SubmissionErrorCode.SIMULATION_FAILED

    def test_reverted(self) -> None:
        result = classify_submission_error(RuntimeError("transaction 0xabc reverted"))
        assert result.code is SubmissionErrorCode.REVERTED

    def test_backend_unavailable(self) -> None:
        result = classify_submission_error(httpx.ConnectError("connection refused"))
        assert result.code is SubmissionErrorCode.BACKEND_UNAVAILABLE

    def test_unknown(self) -> None:
        result = classify_submission_error(ValueError("weird"))
        assert result.code is SubmissionErrorCode.UNKNOWN
        assert result.error_code == "UNKNOWN"

    def test_empty_message_uses_type_name(self) -> None:
        assert str(classify_submission_error(TimeoutError())) == "TimeoutError"


class TestDeploymentNotFound:
    def test_fields(self) -> None:
        err = DeploymentNotFound(999, "mailbox")
        assert isinstance(err, XChainError)
        assert err.chain_id == 999
        assert err.error_code == "DEPLOYMENT_NOT_FOUND"
        assert "999" in str(err)

    def test_submission_error_is_xchain_error(self) -> None:
        assert isinstance(SubmissionError("x"), XChainError)
