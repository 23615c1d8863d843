"""
Bank envelope decoding.

The bank returns validation results inside a `{status, message, value,
validation}` envelope whose `value` is meant to be encrypted with a key
derived from the client's master key. Turning an envelope into a trusted
ValidationResponse happens in exactly one place: the decoder handed to the
gateway client. Nothing else reads `value`.
"""
import json
from typing import Callable

from pydantic import ValidationError

from schoolpay.exceptions.exceptions import BankDecryptionError
from schoolpay.pydanticModels.bankModels import BankEnvelope, ValidationResponse

EnvelopeDecoder = Callable[[BankEnvelope], ValidationResponse]

PLAIN_ENCODING = "plain"
ENCRYPTED_ENCODING = "encrypted"


def decode_plain_envelope(envelope: BankEnvelope) -> ValidationResponse:
    """Decode an envelope whose `value` is an unencrypted JSON validation payload."""
    if not envelope.value:
        raise BankDecryptionError("Bank envelope carries no payload")
    try:
        payload = json.loads(envelope.value)
    except ValueError as e:
        raise BankDecryptionError(f"Bank payload is not valid JSON: {e}")
    try:
        return ValidationResponse.model_validate(payload)
    except ValidationError as e:
        raise BankDecryptionError(f"Bank payload rejected: {e.error_count()} invalid field(s)")


class EncryptedEnvelopeDecoder:
    """
    Decoder for encrypted bank payloads.

    The cipher, key derivation and authenticity check used by the bank are not
    known yet, so every envelope is rejected rather than trusted. Replace
    `decrypt` once the scheme is available; callers do not change.
    """

    def __init__(self, master_key: str):
        self.master_key = master_key

    def decrypt(self, envelope: BankEnvelope) -> str:
        if not self.master_key:
            raise BankDecryptionError("BANK_MASTER_KEY is not configured")
        raise BankDecryptionError("Decryption of bank payloads is not available")

    def __call__(self, envelope: BankEnvelope) -> ValidationResponse:
        plain_text = self.decrypt(envelope)
        return decode_plain_envelope(envelope.model_copy(update={"value": plain_text}))


def get_envelope_decoder(encoding: str, master_key: str = "") -> EnvelopeDecoder:
    if encoding == PLAIN_ENCODING:
        return decode_plain_envelope
    return EncryptedEnvelopeDecoder(master_key)
