"""
Shared fixtures
"""

import pytest

from sfbatch.api.transport import Transport
from sfbatch.auth import Credential

INSTANCE_URL = "https://example.my.salesforce.com"


@pytest.fixture
def credential():
    """A credential pointing at a mocked instance"""
    return Credential(access_token="accesstokenvalue", instance_url=INSTANCE_URL)


@pytest.fixture
def api_url():
    return f"{INSTANCE_URL}/services/data/v59.0"


@pytest.fixture
def transport():
    t = Transport(timeout=5)
    yield t
    t.close()
