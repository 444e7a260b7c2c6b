"""Short, human-typeable session tokens."""

import secrets
import string

TOKEN_ALPHABET = string.ascii_uppercase + string.digits
TOKEN_LENGTH = 8


def generate_token() -> str:
    """Return an 8-character token drawn uniformly from [A-Z0-9].

    Uniqueness against stored sessions is not checked; with ~41 bits of
    entropy and a 24h lifetime collisions are negligible.
    """
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))
