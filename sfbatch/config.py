"""
Configuration loading

Reads a YAML file of the form:

    salesforce:
      domain: mycompany.my.salesforce.com
      username: integration@mycompany.com
      password: ...
      security_token: ...
      consumer_key: ...
      consumer_secret: ...
    client:
      poll_interval: 1.0
      max_workers: 8
      timeout: 60

SF_* environment variables override the salesforce section.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import yaml

from .auth.oauth import Creds

ENV_OVERRIDES = {
    "SF_DOMAIN": "domain",
    "SF_USERNAME": "username",
    "SF_PASSWORD": "password",
    "SF_SECURITY_TOKEN": "security_token",
    "SF_CONSUMER_KEY": "consumer_key",
    "SF_CONSUMER_SECRET": "consumer_secret",
    "SF_ACCESS_TOKEN": "access_token",
}


@dataclass
class ClientConfig:
    """Settings for a Salesforce client handle"""
    creds: Creds = field(default_factory=Creds)
    poll_interval: float = 1.0
    max_workers: Optional[int] = None
    timeout: float = 60.0


def load_config(config_path: str) -> ClientConfig:
    """Load configuration from YAML file"""
    path = Path(config_path).expanduser()

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        config = yaml.safe_load(f) or {}

    return create_client_config(apply_env_overrides(config))


def config_from_env() -> ClientConfig:
    """Build configuration from SF_* environment variables only"""
    return create_client_config(apply_env_overrides({}))


def apply_env_overrides(config: dict) -> dict:
    for env_var, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            config.setdefault("salesforce", {})[key] = value
    return config


def create_client_config(config: dict) -> ClientConfig:
    """Create ClientConfig from loaded configuration"""
    sf = config.get("salesforce") or {}
    client = config.get("client") or {}

    creds = Creds(
        domain=sf.get("domain", "login"),
        username=sf.get("username", ""),
        password=sf.get("password", ""),
        security_token=sf.get("security_token", ""),
        consumer_key=sf.get("consumer_key", ""),
        consumer_secret=sf.get("consumer_secret", ""),
        access_token=sf.get("access_token", ""),
    )

    max_workers = client.get("max_workers")
    return ClientConfig(
        creds=creds,
        poll_interval=float(client.get("poll_interval", 1.0)),
        max_workers=int(max_workers) if max_workers else None,
        timeout=float(client.get("timeout", 60.0)),
    )
