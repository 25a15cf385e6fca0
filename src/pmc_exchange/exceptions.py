"""Custom exceptions for pmc-exchange."""


class PmcExchangeError(Exception):
    """Base exception for all pmc-exchange errors."""


class ArgumentParsingError(PmcExchangeError):
    """Exception raised when command-line arguments cannot be parsed."""


class ConfigurationError(PmcExchangeError):
    """Exception raised for missing or invalid configuration values."""


class AuthenticationError(PmcExchangeError):
    """Exception raised when the mail service rejects the credentials."""


class DiscoveryError(PmcExchangeError):
    """Exception raised when no secure EWS endpoint can be discovered."""


class MissingFolderError(PmcExchangeError):
    """Exception raised when a required folder is absent or ambiguous."""


class ExchangeAPIError(PmcExchangeError):
    """Exception raised for Exchange Web Services call failures."""
