"""Domain errors surfaced to API clients.

Each error carries a stable ``code`` and HTTP status so clients can branch on
the kind of failure instead of parsing messages.
"""


class ForgeError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail

    def payload(self) -> dict:
        return {"error": self.code, "detail": self.detail}


class NotFoundError(ForgeError):
    """Entity is missing or owned by someone else; the two are indistinguishable."""

    status_code = 404
    code = "not_found"


class InvalidInputError(ForgeError):
    status_code = 400
    code = "invalid_input"


class InsufficientCreditsError(ForgeError):
    status_code = 402
    code = "insufficient_credits"

    def __init__(self, detail: str, remaining_credits: float, required_credits: float):
        super().__init__(detail)
        self.remaining_credits = remaining_credits
        self.required_credits = required_credits

    def payload(self) -> dict:
        return {
            **super().payload(),
            "remaining_credits": self.remaining_credits,
            "required_credits": self.required_credits,
        }


class PrerequisitesUnmetError(ForgeError):
    status_code = 409
    code = "prerequisites_unmet"

    def __init__(self, unmet: list[str]):
        super().__init__("Please complete or skip the prerequisite prompts first")
        self.unmet = unmet

    def payload(self) -> dict:
        return {**super().payload(), "unmet_prerequisites": self.unmet}


class ProviderExhaustedError(ForgeError):
    status_code = 503
    code = "provider_exhausted"


class GenerationFailedError(ForgeError):
    """AI output could not be parsed into the expected structure."""

    status_code = 502
    code = "generation_failed"
