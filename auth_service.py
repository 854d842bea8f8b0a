import datetime
import logging
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from db import UserRepository
from errors import ConflictError, NotFoundError, UnauthorizedError
from models import User
from schemas import LoginRequest, SignupRequest, parse

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class AuthService:
    """Sign users up, log them in and resolve bearer tokens to users."""

    def __init__(
        self,
        users: UserRepository,
        secret: str,
        algorithm: str = "HS256",
        expire_days: int = 7,
    ) -> None:
        self.users = users
        self._secret = secret
        self._algorithm = algorithm
        self._expire = datetime.timedelta(days=expire_days)

    @staticmethod
    def hash_password(password: str) -> str:
        return pwd_context.hash(password)

    @staticmethod
    def verify_password(password: str, hashed: str) -> bool:
        return pwd_context.verify(password, hashed)

    def create_token(self, user_id: int, now: Optional[datetime.datetime] = None) -> str:
        issued = now or datetime.datetime.now(datetime.timezone.utc)
        claims = {"sub": str(user_id), "iat": issued, "exp": issued + self._expire}
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def decode_token(self, token: str) -> int:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
            return int(payload["sub"])
        except (JWTError, KeyError, TypeError, ValueError):
            raise UnauthorizedError()

    def authenticate(self, token: str) -> User:
        user_id = self.decode_token(token)
        try:
            return self.users.fetch(user_id)
        except NotFoundError:
            logger.warning("token for missing user %s", user_id)
            raise UnauthorizedError()

    def signup(self, data: dict) -> tuple[User, str]:
        fields = parse(SignupRequest, data)
        email = fields.email.lower()
        if self.users.find_by_email(email) is not None:
            raise ConflictError("User already exists")
        user_id = self.users.create(
            email, fields.full_name, self.hash_password(fields.password)
        )
        logger.info("new user %s signed up", user_id)
        return self.users.fetch(user_id), self.create_token(user_id)

    def login(self, data: dict) -> tuple[User, str]:
        fields = parse(LoginRequest, data)
        user = self.users.find_by_email(fields.email.strip().lower())
        if user is None:
            raise UnauthorizedError("No account found with this email address")
        if not self.verify_password(fields.password, user.password_hash):
            logger.warning("failed login for user %s", user.id)
            raise UnauthorizedError("Incorrect password")
        return user, self.create_token(user.id)
