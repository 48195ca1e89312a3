import os
import pytest
from fastapi.testclient import TestClient
from dotenv import load_dotenv
from unittest.mock import AsyncMock, MagicMock

# Load environment variables FIRST, before any app imports.
# Settings are instantiated at import time and need the WhatsApp credentials.
load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), "..", ".env.test"))

from app.main import app  # noqa: E402
from app.services.conversation_service import ConversationService, build_engine  # noqa: E402
from app.workflows.definitions import SMARTFIX_FLOW  # noqa: E402
from app.workflows.engine import FlowEngine  # noqa: E402
from app.workflows.validator import load_flow  # noqa: E402


@pytest.fixture
def smartfix_flow():
    return load_flow(SMARTFIX_FLOW)


@pytest.fixture
def engine(smartfix_flow):
    return FlowEngine(smartfix_flow)


@pytest.fixture
def mock_db():
    """Stand-in for the MongoDB persistence adapter."""
    db = AsyncMock()
    db.get_all_users.return_value = []
    db.get_user_conversation.return_value = []
    db.get_stats.return_value = {"total_users": 0, "total_messages": 0, "requests_by_intent": {}}
    return db


@pytest.fixture
def mock_sender():
    """Stand-in for the WhatsApp outbound adapter."""
    sender = AsyncMock()
    sender.send_response.return_value = "wamid.TEST"
    return sender


@pytest.fixture
def service(mock_db, mock_sender):
    return ConversationService(build_engine(), db=mock_db, sender=mock_sender)


@pytest.fixture(scope="function")
def test_client(mocker, service, mock_db):
    """
    Provides a TestClient for API integration tests.
    The conversation service, database and WhatsApp client are replaced so no
    external call is made and every test starts with an empty session store.
    """
    mocker.patch("app.services.conversation_service.conversation_service", service)
    mocker.patch("app.routes.admin.db_service", mock_db)
    lifecycle_db = MagicMock()
    lifecycle_db.create_indexes = AsyncMock()
    mocker.patch("app.utils.lifecycle.db_service", lifecycle_db)
    mocker.patch("app.utils.lifecycle.whatsapp_service.close", new_callable=AsyncMock)

    with TestClient(app) as client:
        yield client
