"""Exception hierarchy for the relay client, chain gateway and CLOB client."""


class PolyrelayError(Exception):
    """Base class for every error raised by polyrelay."""


class ValidationError(PolyrelayError, ValueError):
    """Bad caller input. Raised before anything goes over the wire."""


# -- Chain gateway -----------------------------------------------------------

class RPCError(PolyrelayError):
    """A JSON-RPC call failed (node error payload or transport failure)."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class GatewayDialError(RPCError):
    """No RPC endpoint could be dialed at construction time."""


class AllNodesFailedError(RPCError):
    """Every endpoint failed with a retryable error."""

    def __init__(self, message: str, last_error: Exception | None = None):
        super().__init__(message)
        self.last_error = last_error


class TransactionNotFoundError(RPCError):
    """The node returned null for a receipt or transaction lookup."""


# -- Relay -------------------------------------------------------------------

class RelayError(PolyrelayError):
    """The relay rejected a request or answered with something unusable."""


class RelayHTTPError(RelayError):
    """Non-200 response from the relay."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class RelayNonceError(RelayError):
    """The relay nonce could not be fetched after all attempts."""


class RelayFailedError(RelayError):
    """Relay reported a terminal failure state for the submission."""

    def __init__(self, message: str, state: str = "", transaction_id: str = ""):
        super().__init__(message)
        self.state = state
        self.transaction_id = transaction_id


class RelayPendingError(RelayError):
    """Relay accepted the submission but returned no transaction hash yet."""

    def __init__(self, message: str, state: str = ""):
        super().__init__(message)
        self.state = state


class SafeTransactionHashError(RelayError):
    """The Safe's getTransactionHash call failed."""


# -- On-chain execution ------------------------------------------------------

class TransactionError(PolyrelayError):
    """A relayed transaction did not complete successfully on chain."""

    def __init__(self, message: str, tx_hash: str = ""):
        super().__init__(message)
        self.tx_hash = tx_hash


class TransactionRevertedError(TransactionError):
    """Receipt status 0."""


class ReceiptTimeoutError(TransactionError):
    """No receipt before the polling deadline."""


class SafeSignatureError(TransactionError, RelayError):
    """Gnosis Safe GS026: invalid owner signature (wrong v or wrong owner). Never retried."""


# -- CLOB --------------------------------------------------------------------

class ClobError(PolyrelayError):
    """CLOB REST request failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
