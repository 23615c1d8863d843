"""
Cascaded validation: ordering, early exit, degradation and verdicts.
"""
from schoolpay.bank.cascade import (
    CASCADE_STRATEGIES,
    MANUAL_REVIEW_MESSAGE,
    NOT_EXECUTED_MESSAGE,
    UNEXPECTED_ERROR_MESSAGE,
    CascadeOrchestrator,
    ValidationStrategy,
)
from schoolpay.bank.decoder import EncryptedEnvelopeDecoder
from schoolpay.bank.gateway import (
    LOGON_PATH,
    VALIDATE_EXISTENCE_PATH,
    VALIDATE_P2P_PATH,
    VALIDATE_REFERENCE_PATH,
    BankGatewayClient,
)
from schoolpay.bank.transport import TransportResponse, envelope_for
from schoolpay.exceptions.exceptions import BankTransportError
from schoolpay.pydanticModels.bankModels import OverallResult, ValidateP2PRequest
from schoolpay.sqlModels.transactionEntities import ValidationMethod
from tests.conftest import found_movement, not_found_movement

LOOKUP_PATHS = [VALIDATE_P2P_PATH, VALIDATE_REFERENCE_PATH, VALIDATE_EXISTENCE_PATH]


def lookups_called(transport):
    return [path for path in transport.paths_called() if path in LOOKUP_PATHS]


class TestOrdering:

    def test_strategies_run_in_priority_order(self):
        assert [s.method for s in CASCADE_STRATEGIES] == [
            ValidationMethod.P2P,
            ValidationMethod.REFERENCE,
            ValidationMethod.EXISTENCE,
        ]

    def test_p2p_hit_stops_the_cascade(self, orchestrator, transport, claim):
        transport.script(VALIDATE_P2P_PATH, found_movement())

        result = orchestrator.run(claim)

        assert result.overall_result == OverallResult.SUCCESS
        assert result.confirmed_by == "p2p"
        assert lookups_called(transport) == [VALIDATE_P2P_PATH]
        assert result.details.validate_reference.executed is False
        assert result.details.validate_existence.executed is False

    def test_reference_hit_after_p2p_miss(self, orchestrator, transport, claim):
        transport.script(VALIDATE_P2P_PATH, not_found_movement())
        transport.script(VALIDATE_REFERENCE_PATH, found_movement())

        result = orchestrator.run(claim)

        assert result.overall_result == OverallResult.SUCCESS
        assert result.confirmed_by == "reference"
        assert lookups_called(transport) == [VALIDATE_P2P_PATH, VALIDATE_REFERENCE_PATH]

    def test_existence_only_confirmation(self, orchestrator, transport, claim):
        transport.script(VALIDATE_EXISTENCE_PATH, found_movement(control_number="CN-EX"))

        result = orchestrator.run(claim)

        assert result.overall_result == OverallResult.SUCCESS
        assert result.confirmed_by == "existence"
        assert lookups_called(transport) == LOOKUP_PATHS
        assert result.movement_exists is True
        assert result.confirmed_data.control_number == "CN-EX"
        for outcome in result.details.outcomes():
            assert outcome.executed is True


class TestDegradation:

    def test_failed_p2p_does_not_abort(self, orchestrator, transport, claim):
        transport.script(VALIDATE_P2P_PATH, BankTransportError("Bank request timed out"))
        transport.script(VALIDATE_REFERENCE_PATH, found_movement())

        result = orchestrator.run(claim)

        assert result.overall_result == OverallResult.SUCCESS
        assert result.confirmed_by == "reference"
        p2p = result.details.validate_p2p
        assert p2p.executed is True
        assert p2p.success is False
        assert "timed out" in p2p.error

    def test_nothing_found_needs_manual_review(self, orchestrator, transport, claim):
        result = orchestrator.run(claim)

        assert result.overall_result == OverallResult.MANUAL_REVIEW
        assert result.message == MANUAL_REVIEW_MESSAGE
        assert result.confirmed_by is None
        assert all(o.executed and o.success and not o.movement_exists for o in result.details.outcomes())

    def test_mixed_failures_need_manual_review(self, orchestrator, transport, claim):
        transport.script(VALIDATE_P2P_PATH, TransportResponse(status_code=500))
        transport.script(
            VALIDATE_REFERENCE_PATH,
            TransportResponse.from_json(envelope_for({}, status="KO", message="Reference not valid")),
        )
        transport.script(VALIDATE_EXISTENCE_PATH, not_found_movement())

        result = orchestrator.run(claim)

        assert result.overall_result == OverallResult.MANUAL_REVIEW
        assert result.details.validate_p2p.error is not None
        assert result.details.validate_p2p.executed is True
        assert result.details.validate_p2p.success is False
        assert result.details.validate_reference.executed is True
        assert result.details.validate_reference.success is False
        assert "Reference not valid" in result.details.validate_reference.error
        assert result.details.validate_existence.success is True

    def test_undecodable_payloads_need_manual_review(self, transport, claim):
        gateway = BankGatewayClient(transport, "test-client-guid", decoder=EncryptedEnvelopeDecoder("key"))
        transport.script(VALIDATE_P2P_PATH, found_movement())

        result = CascadeOrchestrator(gateway).run(claim)

        assert result.overall_result == OverallResult.MANUAL_REVIEW
        assert result.details.validate_p2p.executed is True
        assert result.details.validate_p2p.success is False


class TestTotalOutage:

    def test_no_session_means_error(self, orchestrator, transport, claim):
        transport.script(LOGON_PATH, *[BankTransportError("connection refused") for _ in range(3)])

        result = orchestrator.run(claim)

        assert result.overall_result == OverallResult.ERROR
        assert result.message == NOT_EXECUTED_MESSAGE
        assert lookups_called(transport) == []
        for outcome in result.details.outcomes():
            assert outcome.executed is False
            assert outcome.error

    def test_unbuildable_request_is_not_executed(self, gateway, transport, claim):
        def broken_request(_claim):
            return ValidateP2PRequest.model_validate({})

        strategies = [
            ValidationStrategy(ValidationMethod.P2P, "validate_p2p", broken_request, BankGatewayClient.validate_p2p),
        ]

        result = CascadeOrchestrator(gateway, strategies).run(claim)

        assert result.overall_result == OverallResult.ERROR
        assert result.details.validate_p2p.executed is False
        assert transport.calls == []

    def test_empty_strategy_list_runs_nothing(self, gateway, transport, claim):
        orchestrator = CascadeOrchestrator(gateway, [])

        result = orchestrator.run(claim)

        assert orchestrator.strategies == []
        assert result.overall_result == OverallResult.ERROR
        assert result.message == NOT_EXECUTED_MESSAGE
        assert transport.calls == []

    def test_unexpected_error_is_contained(self, gateway, claim):
        strategies = [
            ValidationStrategy(
                ValidationMethod.P2P, "no_such_slot",
                lambda c: c.to_p2p_request(), BankGatewayClient.validate_p2p,
            ),
        ]

        result = CascadeOrchestrator(gateway, strategies).run(claim)

        assert result.overall_result == OverallResult.ERROR
        assert result.message == UNEXPECTED_ERROR_MESSAGE

