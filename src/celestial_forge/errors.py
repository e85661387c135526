"""
Error taxonomy for the forge.

Every condition an operation can report to its caller derives from ForgeError,
so transport layers can catch one type and render the rest generically.
"""


class ForgeError(Exception):
    """Base class for forge errors."""
    pass


class CharacterNotFoundError(ForgeError):
    """Referenced character does not exist."""
    def __init__(self, character_id: str):
        self.character_id = character_id
        super().__init__(f"Character {character_id} not found")


class InsufficientFundsError(ForgeError):
    """Spend exceeds the available CP balance. Nothing was changed."""
    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient CP. Available: {available}, Requested: {requested}"
        )


class InvalidAmountError(ForgeError, ValueError):
    """CP amount is not a non-negative integer."""
    def __init__(self, amount: object):
        self.amount = amount
        super().__init__(f"CP amount must be a non-negative integer, got {amount!r}")


class ConfigurationInvalid(ForgeError):
    """Forge configuration is missing or malformed. Fatal at startup."""
    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid forge configuration ({source}): {reason}")


class InvalidArgumentError(ForgeError, ValueError):
    """A caller-supplied argument has the wrong type or value."""
    def __init__(self, name: str, value: object, expected: str):
        self.name = name
        self.value = value
        super().__init__(f"Invalid {name}: expected {expected}, got {value!r}")
