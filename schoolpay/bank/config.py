from enum import Enum
from functools import lru_cache

from schoolpay.bank.cascade import CascadeOrchestrator
from schoolpay.bank.decoder import get_envelope_decoder
from schoolpay.bank.gateway import BankGatewayClient
from schoolpay.bank.transport import BankTransport, HttpBankTransport, OfflineBankTransport
from schoolpay.config.settings import settings


class TransportType(Enum):
    HTTP = "http"
    OFFLINE = "offline"


def get_bank_transport() -> BankTransport:
    """
    Factory function to get the bank transport selected by configuration.

    Uses the BANK_TRANSPORT setting:
    - "http" (default): Uses HttpBankTransport against BANK_BASE_URL
    - "offline": Uses OfflineBankTransport with default answers

    Returns:
        BankTransport instance configured for the current environment.
    """
    if settings.BANK_TRANSPORT == TransportType.OFFLINE.value:
        return OfflineBankTransport()
    return HttpBankTransport(base_url=settings.BANK_BASE_URL, timeout=settings.BANK_TIMEOUT_SECONDS)


@lru_cache(maxsize=1)
def get_bank_gateway() -> BankGatewayClient:
    """
    Process-wide gateway client.

    One instance is shared so the bank working key is reused across requests.
    """
    return BankGatewayClient(
        transport=get_bank_transport(),
        client_guid=settings.BANK_CLIENT_GUID,
        decoder=get_envelope_decoder(settings.BANK_RESPONSE_ENCODING, settings.BANK_MASTER_KEY),
    )


def get_cascade_orchestrator() -> CascadeOrchestrator:
    return CascadeOrchestrator(get_bank_gateway())
