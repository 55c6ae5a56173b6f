"""
Salesforce OAuth 2.0 Authentication

Exchanges configured credentials for an immutable bearer Credential.
Supports:
- Username-Password Flow
- Client Credentials Flow
- A pre-issued access token
"""

from dataclasses import dataclass
from typing import Optional
import requests
import structlog

from ..errors import AuthenticationError

logger = structlog.get_logger()


@dataclass(frozen=True)
class Credential:
    """Bearer token and the instance it is valid for"""
    access_token: str
    instance_url: str
    id: str = ""
    token_type: str = "Bearer"
    issued_at: str = ""
    signature: str = ""

    @property
    def authorization(self) -> str:
        return f"Bearer {self.access_token}"

    @classmethod
    def from_token_response(cls, data: dict) -> 'Credential':
        return cls(
            access_token=data['access_token'],
            instance_url=data['instance_url'].rstrip('/'),
            id=data.get('id', ''),
            token_type=data.get('token_type', 'Bearer'),
            issued_at=str(data.get('issued_at', '')),
            signature=data.get('signature', '')
        )


@dataclass
class Creds:
    """Inputs for authentication"""
    domain: str = "login"
    username: str = ""
    password: str = ""
    security_token: str = ""
    consumer_key: str = ""
    consumer_secret: str = ""
    access_token: str = ""

    @property
    def login_url(self) -> str:
        """Token endpoint host: a full URL, a My Domain host, or login/test"""
        domain = self.domain.rstrip('/')
        if domain.startswith(("https://", "http://")):
            return domain
        if "." in domain:
            return f"https://{domain}"
        return f"https://{domain}.salesforce.com"


def authenticate(creds: Creds, timeout: float = 30.0) -> Credential:
    """
    Authenticate with Salesforce.

    Args:
        creds: Authentication inputs; the flow is picked from what is set
        timeout: Seconds to wait for the token endpoint

    Returns:
        A new Credential

    Raises:
        AuthenticationError: if no flow applies or the exchange fails
    """
    if creds.access_token:
        logger.info("using_access_token", instance_url=creds.login_url)
        return Credential(access_token=creds.access_token, instance_url=creds.login_url)

    if creds.username and creds.password and creds.consumer_key and creds.consumer_secret:
        return _username_password_flow(creds, timeout)

    if creds.consumer_key and creds.consumer_secret:
        return _client_credentials_flow(creds, timeout)

    raise AuthenticationError("invalid authentication method: no usable credentials supplied")


def _username_password_flow(creds: Creds, timeout: float) -> Credential:
    """Authenticate using username-password flow"""
    logger.info("authenticating_with_salesforce", username=creds.username, flow="password")

    payload = {
        'grant_type': 'password',
        'client_id': creds.consumer_key,
        'client_secret': creds.consumer_secret,
        'username': creds.username,
        'password': f"{creds.password}{creds.security_token}"
    }
    return _request_token(creds, payload, timeout)


def _client_credentials_flow(creds: Creds, timeout: float) -> Credential:
    """Authenticate using client credentials flow"""
    logger.info("authenticating_with_salesforce", flow="client_credentials")

    payload = {
        'grant_type': 'client_credentials',
        'client_id': creds.consumer_key,
        'client_secret': creds.consumer_secret
    }
    return _request_token(creds, payload, timeout)


def _request_token(creds: Creds, payload: dict, timeout: float) -> Credential:
    token_url = f"{creds.login_url}/services/oauth2/token"

    try:
        response = requests.post(token_url, data=payload, timeout=timeout)
    except requests.RequestException as e:
        logger.error("authentication_failed", error=str(e))
        raise AuthenticationError(f"Authentication request failed: {e}") from e

    if response.status_code != 200:
        error = _error_body(response)
        logger.error("authentication_failed", status_code=response.status_code, error=error)
        raise AuthenticationError(f"Authentication failed: {error.get('error_description', error)}")

    credential = Credential.from_token_response(response.json())
    logger.info("authentication_successful", instance_url=credential.instance_url)
    return credential


def _error_body(response: requests.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {'error_description': response.text}
    return body if isinstance(body, dict) else {'error_description': body}


def revoke(credential: Credential, timeout: float = 30.0) -> None:
    """Revoke an access token. The Credential object itself stays unchanged."""
    revoke_url = f"{credential.instance_url}/services/oauth2/revoke"
    try:
        response = requests.post(revoke_url, data={'token': credential.access_token}, timeout=timeout)
    except requests.RequestException as e:
        logger.error("token_revocation_failed", error=str(e))
        raise AuthenticationError(f"Token revocation request failed: {e}") from e

    if response.status_code != 200:
        raise AuthenticationError(f"Token revocation failed: {response.text}")

    logger.info("token_revoked")
