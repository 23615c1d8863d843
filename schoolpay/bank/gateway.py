"""
Bank Gateway Client.

Owns the bank working session and issues the three movement lookups
(P2P, Reference, Existence). Every transport or protocol failure surfaces as
AuthenticationError, BankTransportError or BankDecryptionError.
"""
import threading
from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from schoolpay.bank.decoder import EnvelopeDecoder, decode_plain_envelope
from schoolpay.bank.transport import BankTransport, TransportResponse
from schoolpay.customLogging.logger import get_logger
from schoolpay.exceptions.exceptions import AuthenticationError, BankTransportError
from schoolpay.pydanticModels.bankModels import (
    BankEnvelope,
    LogOnRequest,
    LogOnResponse,
    ValidateExistenceRequest,
    ValidateP2PRequest,
    ValidateReferenceRequest,
    ValidationResponse,
    BankValidationRequest,
)

logger = get_logger("schoolpay.bank.gateway")

LOGON_PATH = "/Auth/LogOn"
VALIDATE_P2P_PATH = "/Position/ValidateP2P"
VALIDATE_REFERENCE_PATH = "/Position/Validate"
VALIDATE_EXISTENCE_PATH = "/Position/ValidateExistence"
WELCOME_PATH = "/welcome/home"


class BankGatewayClient:
    """
    Client for the bank's payment validation API.

    The working key obtained at logon is cached on the instance and reused
    until the bank rejects it, at which point it is refreshed once and the
    call retried.
    """

    def __init__(
        self,
        transport: BankTransport,
        client_guid: str,
        decoder: EnvelopeDecoder = decode_plain_envelope,
    ):
        self.transport = transport
        self.client_guid = client_guid
        self.decoder = decoder
        self._working_key: Optional[str] = None
        self._session_lock = threading.Lock()

    @property
    def is_authenticated(self) -> bool:
        return self._working_key is not None

    # =========================================================================
    # Session
    # =========================================================================

    def authenticate(self) -> str:
        """
        Log on to the bank and cache the working key.

        Raises:
            AuthenticationError: If the call fails or no working key is returned.
        """
        with self._session_lock:
            logger.info("Authenticating with bank")
            try:
                payload = LogOnRequest(client_guid=self.client_guid).model_dump(by_alias=True)
            except ValidationError:
                raise AuthenticationError("Bank client GUID is not configured")

            try:
                response = self.transport.post(LOGON_PATH, payload)
                if not response.ok:
                    raise BankTransportError(
                        f"HTTP error {response.status_code} from bank logon",
                        http_status=response.status_code,
                    )
                logon = LogOnResponse.model_validate(response.json())
            except BankTransportError as e:
                logger.error(f"Bank authentication failed: {e.message}")
                raise AuthenticationError(f"Failed to authenticate with bank: {e.message}")
            except ValidationError:
                logger.error("Bank authentication response did not include a working key")
                raise AuthenticationError("WorkingKey not received from bank")

            self._working_key = logon.working_key
            logger.info("Bank authentication succeeded")
            return self._working_key

    def invalidate_session(self) -> None:
        with self._session_lock:
            self._working_key = None

    def ensure_session(self) -> str:
        """Return the cached working key, logging on first if there is none."""
        working_key = self._working_key
        if working_key is None:
            working_key = self.authenticate()
        return working_key

    # =========================================================================
    # Movement lookups
    # =========================================================================

    def validate_p2p(self, request: ValidateP2PRequest) -> ValidationResponse:
        logger.info(
            "Validating P2P movement",
            extra={"account": request.account_number, "reference": request.reference, "amount": str(request.amount)},
        )
        return self._validate("P2P", VALIDATE_P2P_PATH, request)

    def validate_reference(self, request: ValidateReferenceRequest) -> ValidationResponse:
        logger.info(
            "Validating movement by reference",
            extra={"account": request.account_number, "reference": request.reference, "amount": str(request.amount)},
        )
        return self._validate("Reference", VALIDATE_REFERENCE_PATH, request)

    def validate_existence(self, request: ValidateExistenceRequest) -> ValidationResponse:
        logger.info(
            "Validating movement existence",
            extra={"account": request.account_number, "phone": request.phone_number, "amount": str(request.amount)},
        )
        return self._validate("Existence", VALIDATE_EXISTENCE_PATH, request)

    def _validate(self, label: str, path: str, request: BankValidationRequest) -> ValidationResponse:
        self.ensure_session()
        response = self._post_with_session(path, request.to_payload())

        try:
            envelope = BankEnvelope.model_validate(response.json())
        except ValidationError:
            raise BankTransportError(f"{label} validation returned a malformed envelope")

        logger.info(f"{label} validation answered", extra={"bank_status": envelope.status, "bank_message": envelope.message})

        if envelope.status != "OK":
            raise BankTransportError(f"{label} validation rejected by bank: {envelope.message or 'KO'}")

        return self.decoder(envelope)

    def _post_with_session(self, path: str, payload: dict) -> TransportResponse:
        try:
            return self._post_checked(path, payload)
        except BankTransportError as e:
            if not e.is_auth_rejection:
                raise
            logger.warning(f"Bank rejected working key on {path}, refreshing session")

        self.invalidate_session()
        try:
            self.authenticate()
        except AuthenticationError as e:
            raise BankTransportError(f"Session refresh after rejection failed: {e.message}")
        return self._post_checked(path, payload)

    def _post_checked(self, path: str, payload: dict) -> TransportResponse:
        headers = {"Authorization": f"Bearer {self._working_key}"} if self._working_key else None
        response = self.transport.post(path, payload, headers=headers)
        if not response.ok:
            raise BankTransportError(
                f"HTTP error {response.status_code} from {path}", http_status=response.status_code
            )
        return response

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def welcome(self) -> dict:
        response = self.transport.get(WELCOME_PATH)
        if not response.ok:
            raise BankTransportError(f"HTTP error {response.status_code} from bank welcome", http_status=response.status_code)
        return {
            "message": response.text,
            "service": "BNC Electronic Payments Interface",
            "timestamp": datetime.now().isoformat(),
        }

    def test_connection(self) -> dict:
        self.welcome()
        return {
            "service": "BNC API Integration",
            "status": "Connected",
            "timestamp": datetime.now().isoformat(),
        }
