"""
Bank gateway client: session handling, envelope parsing and decoding.
"""
from decimal import Decimal

import pytest
import requests

from schoolpay.bank.decoder import EncryptedEnvelopeDecoder, decode_plain_envelope, get_envelope_decoder
from schoolpay.bank.gateway import (
    LOGON_PATH,
    VALIDATE_EXISTENCE_PATH,
    VALIDATE_P2P_PATH,
    VALIDATE_REFERENCE_PATH,
    BankGatewayClient,
)
from schoolpay.bank.transport import HttpBankTransport, TransportResponse, envelope_for
from schoolpay.exceptions.exceptions import AuthenticationError, BankDecryptionError, BankTransportError
from schoolpay.pydanticModels.bankModels import BankEnvelope
from tests.conftest import found_movement, not_found_movement


class TestAuthentication:

    def test_logon_caches_working_key(self, gateway, transport):
        assert not gateway.is_authenticated

        key = gateway.authenticate()

        assert key == transport.working_key
        assert gateway.is_authenticated
        assert transport.calls == [(LOGON_PATH, {"ClientGUID": "test-client-guid"})]

    def test_session_reused_across_lookups(self, gateway, transport, claim):
        gateway.validate_p2p(claim.to_p2p_request())
        gateway.validate_existence(claim.to_existence_request())

        assert transport.paths_called().count(LOGON_PATH) == 1

    def test_missing_working_key_raises(self, gateway, transport):
        transport.script(LOGON_PATH, TransportResponse.from_json({"WorkingKey": ""}))

        with pytest.raises(AuthenticationError):
            gateway.authenticate()
        assert not gateway.is_authenticated

    def test_transport_failure_on_logon_raises(self, gateway, transport):
        transport.script(LOGON_PATH, BankTransportError("connection refused"))

        with pytest.raises(AuthenticationError):
            gateway.authenticate()

    def test_http_error_on_logon_raises(self, gateway, transport):
        transport.script(LOGON_PATH, TransportResponse(status_code=503, text="unavailable"))

        with pytest.raises(AuthenticationError):
            gateway.authenticate()

    def test_unconfigured_client_guid_raises(self, transport):
        gateway = BankGatewayClient(transport, client_guid="")

        with pytest.raises(AuthenticationError):
            gateway.authenticate()
        assert transport.calls == []


class TestLookups:

    def test_p2p_payload_uses_bank_field_names(self, gateway, transport, claim):
        gateway.validate_p2p(claim.to_p2p_request())

        path, payload = transport.calls[-1]
        assert path == VALIDATE_P2P_PATH
        assert payload == {
            "Amount": 25.0,
            "AccountNumber": "01910000000000000001",
            "BankCode": 191,
            "PhoneNumber": "04141234567",
            "ClientID": "V12345678",
            "Reference": "000123456789",
            "RequestDate": "2026-10-19",
        }

    def test_reference_lookup_sends_movement_date(self, gateway, transport, claim):
        gateway.validate_reference(claim.to_reference_request())

        path, payload = transport.calls[-1]
        assert path == VALIDATE_REFERENCE_PATH
        assert payload["DateMovement"] == "2026-10-19"
        assert "PhoneNumber" not in payload

    def test_existence_lookup_omits_reference(self, gateway, transport, claim):
        gateway.validate_existence(claim.to_existence_request())

        path, payload = transport.calls[-1]
        assert path == VALIDATE_EXISTENCE_PATH
        assert "Reference" not in payload

    def test_found_movement_is_decoded(self, gateway, transport, claim):
        transport.script(VALIDATE_P2P_PATH, found_movement(control_number="CN-77"))

        response = gateway.validate_p2p(claim.to_p2p_request())

        assert response.movement_exists is True
        assert response.control_number == "CN-77"
        assert response.amount == Decimal("25.00")

    def test_not_found_movement_is_decoded(self, gateway, transport, claim):
        transport.script(VALIDATE_P2P_PATH, not_found_movement())

        response = gateway.validate_p2p(claim.to_p2p_request())

        assert response.movement_exists is False

    def test_ko_envelope_raises_transport_error(self, gateway, transport, claim):
        transport.script(
            VALIDATE_P2P_PATH,
            TransportResponse.from_json(envelope_for({}, status="KO", message="Invalid account")),
        )

        with pytest.raises(BankTransportError, match="Invalid account"):
            gateway.validate_p2p(claim.to_p2p_request())

    def test_http_error_raises_transport_error(self, gateway, transport, claim):
        transport.script(VALIDATE_P2P_PATH, TransportResponse(status_code=500, text="boom"))

        with pytest.raises(BankTransportError) as exc_info:
            gateway.validate_p2p(claim.to_p2p_request())
        assert exc_info.value.http_status == 500

    def test_malformed_body_raises_transport_error(self, gateway, transport, claim):
        transport.script(VALIDATE_P2P_PATH, TransportResponse(status_code=200, text="<html>"))

        with pytest.raises(BankTransportError):
            gateway.validate_p2p(claim.to_p2p_request())

    def test_envelope_without_status_raises_transport_error(self, gateway, transport, claim):
        transport.script(VALIDATE_P2P_PATH, TransportResponse.from_json({"message": "hello"}))

        with pytest.raises(BankTransportError):
            gateway.validate_p2p(claim.to_p2p_request())

    def test_found_movement_without_control_number_is_rejected(self, gateway, transport, claim):
        transport.script(
            VALIDATE_P2P_PATH,
            TransportResponse.from_json(envelope_for({"MovementExists": True, "Date": "2026-10-19", "Amount": 25})),
        )

        with pytest.raises(BankDecryptionError):
            gateway.validate_p2p(claim.to_p2p_request())


class TestSessionRefresh:

    def test_rejected_key_is_refreshed_once_and_call_retried(self, gateway, transport, claim):
        transport.script(VALIDATE_P2P_PATH, TransportResponse(status_code=401), found_movement())

        response = gateway.validate_p2p(claim.to_p2p_request())

        assert response.movement_exists is True
        assert transport.paths_called() == [LOGON_PATH, VALIDATE_P2P_PATH, LOGON_PATH, VALIDATE_P2P_PATH]

    def test_second_rejection_is_not_retried_again(self, gateway, transport, claim):
        transport.script(VALIDATE_P2P_PATH, TransportResponse(status_code=403), TransportResponse(status_code=403))

        with pytest.raises(BankTransportError) as exc_info:
            gateway.validate_p2p(claim.to_p2p_request())

        assert exc_info.value.http_status == 403
        assert transport.paths_called().count(VALIDATE_P2P_PATH) == 2

    def test_failed_refresh_surfaces_as_transport_error(self, gateway, transport, claim):
        gateway.authenticate()
        transport.script(VALIDATE_P2P_PATH, TransportResponse(status_code=401))
        transport.script(LOGON_PATH, TransportResponse(status_code=500))

        with pytest.raises(BankTransportError):
            gateway.validate_p2p(claim.to_p2p_request())


class TestDecoders:

    def test_plain_decoder_requires_payload(self):
        with pytest.raises(BankDecryptionError):
            decode_plain_envelope(BankEnvelope(status="OK", value=None))

    def test_plain_decoder_rejects_non_json_payload(self):
        with pytest.raises(BankDecryptionError):
            decode_plain_envelope(BankEnvelope(status="OK", value="c2VjcmV0"))

    def test_encrypted_decoder_never_trusts_payload(self):
        decoder = EncryptedEnvelopeDecoder(master_key="master")

        with pytest.raises(BankDecryptionError):
            decoder(BankEnvelope(status="OK", value='{"MovementExists": true}'))

    def test_decoder_selection(self):
        assert get_envelope_decoder("plain") is decode_plain_envelope
        assert isinstance(get_envelope_decoder("encrypted", "key"), EncryptedEnvelopeDecoder)

    def test_gateway_with_encrypted_decoder_fails_lookup(self, transport, claim):
        gateway = BankGatewayClient(transport, "test-client-guid", decoder=EncryptedEnvelopeDecoder("key"))
        transport.script(VALIDATE_P2P_PATH, found_movement())

        with pytest.raises(BankDecryptionError):
            gateway.validate_p2p(claim.to_p2p_request())


class _FailingSession(requests.Session):

    def __init__(self, error):
        super().__init__()
        self.error = error

    def request(self, *args, **kwargs):
        raise self.error


class TestHttpTransport:

    def test_timeout_becomes_transport_error(self):
        transport = HttpBankTransport("https://bank.example", timeout=0.5,
                                      session=_FailingSession(requests.exceptions.Timeout()))

        with pytest.raises(BankTransportError, match="timed out"):
            transport.post(VALIDATE_P2P_PATH, {})

    def test_connection_error_becomes_transport_error(self):
        transport = HttpBankTransport("https://bank.example",
                                      session=_FailingSession(requests.exceptions.ConnectionError("refused")))

        with pytest.raises(BankTransportError):
            transport.get("/welcome/home")

    def test_url_join(self):
        transport = HttpBankTransport("https://bank.example/api/")

        assert transport._url("/Auth/LogOn") == "https://bank.example/api/Auth/LogOn"
