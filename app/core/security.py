"""Password hashing with passlib (bcrypt)."""

from passlib.context import CryptContext

from app.core.config import get_settings

settings = get_settings()

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)

# Verified against when the username is unknown, so both login failures cost the same
FAKE_HASHED_PASSWORD = pwd_context.hash("this_is_a_fake_user_that_never_exists_2025")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    if not plain or not hashed:
        return False
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        # Not a recognised hash
        return False
