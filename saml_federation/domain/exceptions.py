class BlueprintException(Exception):
    """Base exception for all declaration and verification errors."""
    pass

class InvalidProviderListException(BlueprintException):
    """Raised when the provider name list cannot produce a valid deployment."""
    def __init__(self, provider_names, message: str = "Invalid provider list."):
        self.provider_names = tuple(provider_names)
        super().__init__(f"{message} Got: {list(self.provider_names)}")

class InvalidSettingsException(BlueprintException):
    """Raised when a deployment setting from the environment or `.env` is malformed."""
    pass

class BlueprintIntegrityException(BlueprintException):
    """Raised when a blueprint references a logical id it does not declare."""
    pass

class EndpointUnavailableException(BlueprintException):
    """Raised when a deployed authorize endpoint keeps failing after all retries."""
    def __init__(self, url: str, message: str = "Authorize endpoint unavailable."):
        self.url = url
        super().__init__(f"{message} URL: {url}")
