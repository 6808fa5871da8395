"""
Passcode service: generates the short join code for a game

Pure calculation. Uniqueness is NOT checked here (the caller retries against
the set of live games).
"""
import random
import string


def generate_passcode(length: int = 4) -> str:
    """
    Generate a random decimal passcode

    Examples: 0427, 9310

    Notes:
    - leading zeros are kept, so this is a string, not an int
    - 10^4 = 10,000 codes for the default length; codes are recycled once a
      game ends, so only live games must be avoided
    """
    return ''.join(random.choices(string.digits, k=length))


def is_valid_passcode(passcode: str, length: int = 4) -> bool:
    return isinstance(passcode, str) and len(passcode) == length and passcode.isdigit()
