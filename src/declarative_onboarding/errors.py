"""Error taxonomy shared by the pipeline stages."""


class OnboardingError(Exception):
    """Base class for every error raised by declarative_onboarding."""
    pass


class ParseError(OnboardingError):
    """Malformed declaration (structural error)."""
    pass


class DeviceReadError(OnboardingError):
    """A read against the managed device failed."""

    def __init__(self, message: str, path: str = "", status_code: int = 0):
        super().__init__(message)
        self.path = path
        self.status_code = status_code


class TokenError(OnboardingError):
    """Device identity tokens could not be resolved."""
    pass


class DescriptorError(OnboardingError):
    """Config item descriptor data is malformed."""
    pass


class SettingsError(OnboardingError):
    """Settings file or environment override is invalid."""
    pass
