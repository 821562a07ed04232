"""Account registration, login and token validation."""

import jwt
from sqlalchemy import or_, select

from paylink.common.errors import Conflict, Unauthorized
from paylink.common.logging import logger
from paylink.services.identity.models import User
from paylink.services.identity.schemas import (
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    UserResponse,
    ValidateTokenResponse,
)
from paylink.services.identity.security import decode_token, hash_password, issue_token, verify_password


class IdentityService:
    """Issues bearer tokens and answers validation calls from other services."""

    def __init__(self, session_factory, jwt_secret: str, expires_in_seconds: int = 3600) -> None:
        self.session_factory = session_factory
        self.jwt_secret = jwt_secret
        self.expires_in_seconds = expires_in_seconds

    def register(self, req: RegisterRequest) -> User:
        logger.info("registration attempt phone=%s", req.phone_number)
        with self.session_factory() as db:
            existing = db.execute(
                select(User).where(or_(User.phone_number == req.phone_number, User.email == req.email))
            ).scalars().first()
            if existing is not None:
                if existing.phone_number == req.phone_number:
                    logger.warning("phone number already registered phone=%s", req.phone_number)
                    raise Conflict("Phone number already registered")
                logger.warning("email already registered")
                raise Conflict("Email already registered")

            user = User(
                phone_number=req.phone_number,
                email=req.email,
                password_hash=hash_password(req.password),
            )
            db.add(user)
            db.commit()
            logger.info("user registered user=%s", user.id)
            return user

    def login(self, req: LoginRequest) -> LoginResponse:
        with self.session_factory() as db:
            user = db.execute(select(User).where(User.phone_number == req.phone_number)).scalar_one_or_none()
        if user is None or not verify_password(req.password, user.password_hash):
            logger.warning("login failed phone=%s", req.phone_number)
            raise Unauthorized("Invalid credentials")

        token = issue_token(
            {"sub": user.id, "phone_number": user.phone_number, "email": user.email},
            self.jwt_secret,
            self.expires_in_seconds,
        )
        logger.info("user logged in user=%s", user.id)
        return LoginResponse(access_token=token, user=UserResponse.model_validate(user))

    def validate_token(self, token: str) -> ValidateTokenResponse:
        """Return a verdict for `token`; a bad token is a `valid=False` answer, not an error."""

        try:
            claims = decode_token(token, self.jwt_secret)
        except jwt.InvalidTokenError as exc:
            logger.warning("token validation failed: %s", exc)
            return ValidateTokenResponse(valid=False, message=str(exc) or "Invalid token")

        with self.session_factory() as db:
            user = db.get(User, claims.get("sub"))
        if user is None:
            logger.warning("token validation failed, user not found user=%s", claims.get("sub"))
            return ValidateTokenResponse(valid=False, message="User not found")
        return ValidateTokenResponse(valid=True, user=UserResponse.model_validate(user))
