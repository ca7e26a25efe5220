"""Identity gateway: forwards credentials to Cognito and persists profile rows."""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Protocol

from botocore.exceptions import ClientError

from courseshop.profiles.repository import UserProfileStore
from storefront.models.users import UserProfile

logger = logging.getLogger(__name__)

_BAD_REQUEST_CODES = frozenset(
    {
        "UsernameExistsException",
        "InvalidPasswordException",
        "InvalidParameterException",
        "CodeMismatchException",
        "ExpiredCodeException",
        "AliasExistsException",
        "LimitExceededException",
    }
)
_UNAUTHORIZED_CODES = frozenset(
    {
        "NotAuthorizedException",
        "UserNotConfirmedException",
        "UserNotFoundException",
        "PasswordResetRequiredException",
    }
)


class IdentityError(RuntimeError):
    """Raised when the identity provider rejects a request."""

    def __init__(self, message: str, *, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


class CognitoClient(Protocol):
    """Protocol for the boto3 cognito-idp client methods used by this module."""

    def sign_up(
        self,
        ClientId: str,  # noqa: N803 - boto3 naming
        Username: str,  # noqa: N803 - boto3 naming
        Password: str,  # noqa: N803 - boto3 naming
        UserAttributes: List[Dict[str, str]],  # noqa: N803 - boto3 naming
        **kwargs: Any,
    ) -> Dict[str, Any]: ...

    def confirm_sign_up(
        self,
        ClientId: str,  # noqa: N803 - boto3 naming
        Username: str,  # noqa: N803 - boto3 naming
        ConfirmationCode: str,  # noqa: N803 - boto3 naming
        **kwargs: Any,
    ) -> Dict[str, Any]: ...

    def initiate_auth(
        self,
        AuthFlow: str,  # noqa: N803 - boto3 naming
        AuthParameters: Dict[str, str],  # noqa: N803 - boto3 naming
        ClientId: str,  # noqa: N803 - boto3 naming
    ) -> Dict[str, Any]: ...


@dataclass(frozen=True)
class IdentityConfig:
    """Cognito user pool wiring."""

    user_pool_id: str
    client_id: str
    client_secret: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "IdentityConfig":
        source = os.environ if env is None else env
        user_pool_id = source.get("COGNITO_USER_POOL_ID", "").strip()
        client_id = source.get("COGNITO_CLIENT_ID", "").strip()
        if not user_pool_id:
            raise RuntimeError("server misconfiguration: COGNITO_USER_POOL_ID missing")
        if not client_id:
            raise RuntimeError("server misconfiguration: COGNITO_CLIENT_ID missing")
        client_secret = source.get("COGNITO_CLIENT_SECRET", "").strip() or None
        return cls(user_pool_id=user_pool_id, client_id=client_id, client_secret=client_secret)

    def secret_hash(self, username: str) -> str | None:
        """SECRET_HASH required by app clients that were created with a secret."""
        if not self.client_secret:
            return None
        digest = hmac.new(
            self.client_secret.encode("utf-8"),
            f"{username}{self.client_id}".encode("utf-8"),
            hashlib.sha256,
        ).digest()
        return base64.b64encode(digest).decode("utf-8")


def _require_email(payload: Mapping[str, Any]) -> str:
    value = payload.get("email")
    if not isinstance(value, str) or "@" not in value.strip():
        raise IdentityError("email must be a valid email address")
    return value.strip().lower()


def _require_field(payload: Mapping[str, Any], field: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise IdentityError(f"{field} is required")
    return value


def _translate_client_error(exc: ClientError, *, action: str) -> IdentityError:
    error = exc.response.get("Error", {})
    code = error.get("Code", "")
    message = error.get("Message") or f"{action} failed"
    if code in _BAD_REQUEST_CODES:
        return IdentityError(message, status_code=400)
    if code in _UNAUTHORIZED_CODES:
        # Unknown users read the same as a bad password.
        if code == "UserNotFoundException":
            message = "incorrect username or password"
        return IdentityError(message, status_code=401)
    logger.error("Cognito %s failed with %s: %s", action, code, message)
    return IdentityError(f"{action} failed", status_code=500)


class IdentityGateway:
    """Sign-up, confirmation and sign-in against one Cognito app client."""

    def __init__(self, *, client: CognitoClient, config: IdentityConfig, profiles: UserProfileStore) -> None:
        self._client = client
        self._config = config
        self._profiles = profiles

    def _with_secret_hash(self, params: Dict[str, Any], username: str, key: str = "SecretHash") -> Dict[str, Any]:
        secret_hash = self._config.secret_hash(username)
        if secret_hash is not None:
            params[key] = secret_hash
        return params

    def sign_up(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        email = _require_email(payload)
        password = _require_field(payload, "password")
        name = _require_field(payload, "name").strip()

        params = self._with_secret_hash(
            {
                "ClientId": self._config.client_id,
                "Username": email,
                "Password": password,
                "UserAttributes": [
                    {"Name": "email", "Value": email},
                    {"Name": "name", "Value": name},
                ],
            },
            email,
        )
        try:
            response = self._client.sign_up(**params)
        except ClientError as exc:
            raise _translate_client_error(exc, action="sign-up") from exc

        user_id = str(response.get("UserSub", "")).strip()
        if not user_id:
            raise IdentityError("sign-up response missing user id", status_code=500)

        self._profiles.save(UserProfile.register(user_id=user_id, email=email, name=name))
        logger.info("Signed up user %s", user_id)
        return {
            "userId": user_id,
            "email": email,
            "confirmed": bool(response.get("UserConfirmed", False)),
        }

    def confirm_sign_up(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        email = _require_email(payload)
        code = _require_field(payload, "code").strip()
        params = self._with_secret_hash(
            {
                "ClientId": self._config.client_id,
                "Username": email,
                "ConfirmationCode": code,
            },
            email,
        )
        try:
            self._client.confirm_sign_up(**params)
        except ClientError as exc:
            raise _translate_client_error(exc, action="confirmation") from exc
        return {"email": email, "confirmed": True}

    def sign_in(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        email = _require_email(payload)
        password = _require_field(payload, "password")
        auth_parameters = self._with_secret_hash(
            {"USERNAME": email, "PASSWORD": password},
            email,
            key="SECRET_HASH",
        )
        try:
            response = self._client.initiate_auth(
                AuthFlow="USER_PASSWORD_AUTH",
                AuthParameters=auth_parameters,
                ClientId=self._config.client_id,
            )
        except ClientError as exc:
            raise _translate_client_error(exc, action="sign-in") from exc

        challenge = response.get("ChallengeName")
        if challenge:
            return {"challenge": challenge, "session": response.get("Session", "")}

        result = response.get("AuthenticationResult")
        if not isinstance(result, dict):
            raise IdentityError("sign-in response missing tokens", status_code=500)
        return {
            "idToken": result.get("IdToken", ""),
            "accessToken": result.get("AccessToken", ""),
            "refreshToken": result.get("RefreshToken", ""),
            "expiresIn": result.get("ExpiresIn", 0),
            "tokenType": result.get("TokenType", "Bearer"),
        }


def create_default_cognito_client() -> CognitoClient:
    """Create boto3 cognito-idp client lazily to keep test dependencies small."""
    import boto3

    return boto3.client("cognito-idp")
