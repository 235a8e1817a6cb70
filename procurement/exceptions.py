class ProcurementError(Exception):
    """Base exception for the procurement analytics system."""

    default_message = "An error occurred in the procurement analytics system"

    def __init__(self, message: str = None, code: str = None, details: dict = None):
        self.message = message or self.default_message
        self.code = code
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self) -> dict:
        """Convert the exception to a JSON-friendly dictionary."""
        error_dict = {
            "error": self.__class__.__name__,
            "message": self.message,
        }

        if self.code:
            error_dict["code"] = self.code

        if self.details:
            error_dict["details"] = self.details

        return error_dict


class InsufficientData(ProcurementError):
    """Raised when a forecast key has too few historical points."""

    default_message = "Insufficient Data: At least 3 historical points are required for a reliable AI forecast."


class MissingHistoricalData(InsufficientData):
    """Raised when no historical records match the requested key."""

    default_message = "Missing Historical Data: No records found matching the selected filters."


class ParseFailure(ProcurementError):
    """Raised when a CSV decode yields nothing usable, or on strict decode errors."""

    default_message = "Could not parse CSV. Please ensure the headers match the template."


class InvalidInput(ProcurementError):
    default_message = "Invalid Input: No negotiated rates provided for benchmarking."


class BaselineMissing(ProcurementError):
    default_message = "Baseline Missing: Please ensure you have forecast data available."


class UpstreamError(ProcurementError):
    """Base class for failures of the external AI engine."""

    default_message = "AI System Error: An unexpected error occurred while processing your request."


class MalformedUpstreamResponse(UpstreamError):
    default_message = (
        "Data Interpretation Error: The AI returned an invalid response format. "
        "This may happen with highly unusual data patterns."
    )


class UpstreamUnavailable(UpstreamError):
    default_message = (
        "AI Service Unavailable: The prediction engine is temporarily offline. "
        "Please try again in a few minutes."
    )


class RateLimited(UpstreamError):
    default_message = (
        "AI Rate Limit Exceeded: The system is currently busy. "
        "Please wait a moment before trying again."
    )


class Unauthenticated(UpstreamError):
    default_message = (
        "Authentication Error: The AI service could not verify your credentials. "
        "Please check your configuration."
    )


class GenericUpstreamFailure(UpstreamError):
    pass


class DatasetChanged(ProcurementError):
    """Raised when the working dataset is replaced while an AI request for it is in flight."""

    default_message = (
        "Dataset Changed: The historical data was replaced while the AI request was running. "
        "The results were discarded; please run it again."
    )
