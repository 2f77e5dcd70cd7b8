# Overview: Random identifiers, salts and installation keys.

import secrets

# Alphabet shared with records written by the legacy runtime
RANDOM_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789!@#$%^&*"


def generate_random_string(length: int) -> str:
    """Cryptographically secure random string over RANDOM_ALPHABET."""
    return "".join(secrets.choice(RANDOM_ALPHABET) for _ in range(length))
