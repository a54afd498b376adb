"""Driver password hashing (one-way, salted)."""

from werkzeug.security import check_password_hash, generate_password_hash

from shared.errors import ValidationError


def hash_password(password: str, min_length: int = 6, method: str = "scrypt") -> str:
    if not password or len(password) < min_length:
        raise ValidationError(f"Password must be at least {min_length} characters")
    return generate_password_hash(password, method=method)


def verify_password(password_hash: str | None, password: str) -> bool:
    """False for accounts that never had a password set."""
    if not password_hash or not password:
        return False
    return check_password_hash(password_hash, password)
