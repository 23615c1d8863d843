class MainException(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# --- Bank Gateway Exceptions ---

class BankGatewayException(MainException):
    """Base exception for failures talking to the bank API."""
    def __init__(self, message: str = "Bank gateway error", status_code: int = 502):
        super().__init__(message, status_code)


class AuthenticationError(BankGatewayException):
    """Raised when a bank working session could not be established."""
    def __init__(self, message: str = "Failed to authenticate with bank"):
        super().__init__(message)


class BankTransportError(BankGatewayException):
    """Raised on network, HTTP, timeout or parse failures calling a bank endpoint."""
    def __init__(self, message: str = "Bank request failed", http_status: int = None):
        super().__init__(message)
        self.http_status = http_status

    @property
    def is_auth_rejection(self) -> bool:
        return self.http_status in (401, 403)


class BankDecryptionError(BankGatewayException):
    """Raised when a bank envelope cannot be decoded into a validation response."""
    def __init__(self, message: str = "Bank response could not be decoded"):
        super().__init__(message)


# --- Ledger Exceptions ---

class NotFoundError(MainException):
    """Raised when a referenced representative or transaction does not exist."""
    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, 404)


class InsufficientBalanceError(MainException):
    """Raised when a withdrawal exceeds the representative's balance."""
    def __init__(self, message: str = "Insufficient balance"):
        super().__init__(message, 400)


class LedgerOperationException(MainException):
    """Raised when a ledger write fails and the unit was rolled back."""
    def __init__(self, message: str = "Ledger operation failed"):
        super().__init__(message, 500)


# --- Authentication Exceptions ---

class AuthException(MainException):
    """Base exception for caller authentication errors."""
    def __init__(self, message: str = "Authentication error", status_code: int = 401):
        super().__init__(message, status_code)


class InvalidTokenException(AuthException):
    """Raised when a token is missing or invalid."""
    def __init__(self, message: str = "Invalid token"):
        super().__init__(message, 401)
