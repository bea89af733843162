import pytest

from wallet_mocks import (
    MOCK_EXPLICIT_SESSION_ADDRESS,
    MOCK_IDENTITY_ADDRESS,
    MockProvider,
    create_mock_attestation,
    create_session_permissions,
)
from wallet_core.sessions.config import add_explicit_session, empty_sessions_topology


@pytest.fixture
def provider():
    return MockProvider()


@pytest.fixture
def attestation():
    return create_mock_attestation()


@pytest.fixture
def session_permissions():
    return create_session_permissions()


@pytest.fixture
def sessions_topology(session_permissions):
    """Identity signer, empty blacklist and one explicit session."""
    return add_explicit_session(empty_sessions_topology(MOCK_IDENTITY_ADDRESS), session_permissions)


@pytest.fixture
def explicit_session_address():
    return MOCK_EXPLICIT_SESSION_ADDRESS
