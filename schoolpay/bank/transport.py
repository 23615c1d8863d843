"""
Bank transports.

A transport moves JSON payloads to and from the bank API and nothing else:
session handling, envelope parsing and decoding live in the gateway client.
HttpBankTransport talks to the real API with requests; OfflineBankTransport
answers from scripted responses for tests and sandboxes.
"""
import json
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple, Union

import requests

from schoolpay.customLogging.logger import get_logger
from schoolpay.exceptions.exceptions import BankTransportError

logger = get_logger("schoolpay.bank.transport")


@dataclass
class TransportResponse:
    """Raw HTTP answer from the bank."""
    status_code: int
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        try:
            return json.loads(self.text)
        except ValueError as e:
            raise BankTransportError(f"Malformed JSON from bank: {e}", http_status=self.status_code)

    @classmethod
    def from_json(cls, body: Any, status_code: int = 200) -> "TransportResponse":
        return cls(status_code=status_code, text=json.dumps(body))


class BankTransport(ABC):
    """Common interface for bank transports."""

    @abstractmethod
    def post(self, path: str, payload: dict, headers: Optional[Dict[str, str]] = None) -> TransportResponse:
        """
        POST a JSON payload to a bank endpoint.

        Args:
            path: Endpoint path relative to the bank base URL.
            payload: JSON-serializable request body.
            headers: Extra headers (session credentials).

        Returns:
            The raw response, whatever its status code.

        Raises:
            BankTransportError: On network failure or timeout.
        """
        pass

    @abstractmethod
    def get(self, path: str) -> TransportResponse:
        """GET a bank endpoint. Raises BankTransportError on network failure or timeout."""
        pass

    def close(self) -> None:
        pass


class HttpBankTransport(BankTransport):
    """Transport backed by a requests.Session with a bounded timeout per call."""

    def __init__(self, base_url: str, timeout: float = 15.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _send(self, method: str, path: str, **kwargs) -> TransportResponse:
        url = self._url(path)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout:
            raise BankTransportError(f"Bank request to {path} timed out after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            raise BankTransportError(f"Bank request to {path} failed: {e}")

        logger.debug(f"Bank {method} {path} -> {response.status_code}")
        return TransportResponse(status_code=response.status_code, text=response.text)

    def post(self, path: str, payload: dict, headers: Optional[Dict[str, str]] = None) -> TransportResponse:
        return self._send("POST", path, json=payload, headers=headers)

    def get(self, path: str) -> TransportResponse:
        return self._send("GET", path)

    def close(self) -> None:
        self.session.close()


ScriptedAnswer = Union[TransportResponse, Exception, Callable[[dict], TransportResponse]]


@dataclass
class OfflineBankTransport(BankTransport):
    """
    Deterministic in-process transport.

    Answers are queued per path with `script()`; a path with no queued answer
    falls back to its default. Defaults authenticate successfully and report
    every movement as not found. Every call is recorded in `calls`.
    """
    working_key: str = "offline-working-key"
    scripted: Dict[str, Deque[ScriptedAnswer]] = field(default_factory=lambda: defaultdict(deque))
    calls: List[Tuple[str, dict]] = field(default_factory=list)

    def script(self, path: str, *answers: ScriptedAnswer) -> "OfflineBankTransport":
        self.scripted[path].extend(answers)
        return self

    def paths_called(self) -> List[str]:
        return [path for path, _ in self.calls]

    def _default(self, path: str) -> TransportResponse:
        if path.endswith("/LogOn"):
            return TransportResponse.from_json({"WorkingKey": self.working_key})
        if path.startswith("/Position/"):
            return TransportResponse.from_json(envelope_for({"MovementExists": False}))
        return TransportResponse(status_code=200, text="BNC Electronic Payments Interface")

    def _answer(self, path: str, payload: dict) -> TransportResponse:
        self.calls.append((path, payload))
        queue = self.scripted.get(path)
        if not queue:
            return self._default(path)
        answer = queue.popleft()
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return answer(payload)
        return answer

    def post(self, path: str, payload: dict, headers: Optional[Dict[str, str]] = None) -> TransportResponse:
        return self._answer(path, payload)

    def get(self, path: str) -> TransportResponse:
        return self._answer(path, {})


def envelope_for(validation: dict, status: str = "OK", message: str = "") -> dict:
    """Wrap a plain validation payload in the bank's envelope, unencrypted."""
    return {"status": status, "message": message, "value": json.dumps(validation)}
