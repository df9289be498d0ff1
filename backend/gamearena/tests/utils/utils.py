import random
import string
from datetime import timedelta

from gamearena.core.security import create_access_token
from gamearena.models import User


def random_lower_string(length: int = 32) -> str:
    return "".join(random.choices(string.ascii_lowercase, k=length))


def random_email() -> str:
    return f"{random_lower_string(12)}@{random_lower_string(8)}.com"


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(user.id, expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}
