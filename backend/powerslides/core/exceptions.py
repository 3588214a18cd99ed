"""
Error kinds shared by the relay and the peers
"""


class PowerslidesError(Exception):
    """Base error"""


class PairingCodeError(PowerslidesError):
    """Pairing code could not be used"""

    kind = "invalid"
    remediation = "Check the pairing code and try again."

    def __init__(self, message: str = None):
        super().__init__(message or self.remediation)


class InvalidCodeError(PairingCodeError):
    """Malformed pairing code (wrong length, alphabet or value)"""

    kind = "invalid"
    remediation = "That pairing code is not valid. Re-check the code you typed."


class ExpiredCodeError(PairingCodeError):
    """Well-formed pairing code outside its validity window"""

    kind = "expired"
    remediation = "That pairing code has expired. Generate a new code in the extension."


class RelayError(PowerslidesError):
    """Connection-scoped protocol error; the relay closes the offending socket"""

    close_reason = "Protocol error"


class JoinRejectedError(RelayError):
    """Join refused; peers only ever see the generic reason so room existence stays hidden"""

    close_reason = "Join rejected"


class PasswordMismatchError(JoinRejectedError):
    """Room exists with a different password"""


class RoomNotFoundError(JoinRejectedError):
    """Room is missing and the joiner may not create it"""


class MalformedMessageError(RelayError):
    close_reason = "Malformed message"


class NoPublisherError(RelayError):
    """Command arrived while the room has no publisher; dropped, never closes"""


class SocketUnreadyError(PowerslidesError):
    """Send attempted on a socket that is not open"""


class ConfigurationError(PowerslidesError):
    """Missing or invalid runtime configuration"""
