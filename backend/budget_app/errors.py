"""Exceptions raised by the inbound message pipeline."""


class PipelineError(Exception):
    """Base class for pipeline failures."""


class TransportParseError(PipelineError):
    """The webhook body could not be decoded into the expected envelope."""


class TransactionValidationError(PipelineError):
    """A candidate transaction failed validation at the ledger boundary."""


class LedgerWriteError(PipelineError):
    """The store rejected a ledger write."""


class WhatsAppAPIError(PipelineError):
    """The messaging transport returned an error or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
