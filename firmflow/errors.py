# firmflow/errors.py


class FirmFlowError(Exception):
    """Base error for the upload client.

    ``user_message`` is the short text shown to the user. Internal detail
    (response bodies, tracebacks) goes to the job log, never into it.
    """

    user_message = "Something went wrong."

    def __init__(self, detail=None, user_message=None):
        super().__init__(detail or user_message or self.user_message)
        self.detail = detail
        if user_message is not None:
            self.user_message = user_message


class ValidationError(FirmFlowError):
    """Raised when an upload is rejected before any network call."""

    user_message = "Please select a PDF or DOCX file"


class JobInProgressError(FirmFlowError):
    """Raised when a new upload starts while a job is still running."""

    user_message = "A document is already being processed."


class SubmissionError(FirmFlowError):
    user_message = "Upload failed. Please try again."


class StatusRequestError(FirmFlowError):
    user_message = "Status check failed"


class ProcessingError(FirmFlowError):
    user_message = "Processing failed"


class ParseError(FirmFlowError):
    user_message = "Extraction returned but could not be parsed. See raw JSON below."


class PollTimeoutError(FirmFlowError):
    user_message = "Processing timeout"


class ForwardingError(FirmFlowError):
    user_message = "Failed to send to automation"


class StorageQuotaError(FirmFlowError):
    """Raised by a storage backend when a write would exceed its quota."""

    user_message = "Storage quota exceeded"
