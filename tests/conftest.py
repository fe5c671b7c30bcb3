# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Test fixtures for the gemini-media-mcp-server tests."""

import httpx
import pytest
from awslabs.gemini_media_mcp_server.config import ServerConfig
from io import BytesIO
from loguru import logger
from PIL import Image
from unittest.mock import AsyncMock, MagicMock


API_URL = 'https://generativelanguage.googleapis.com'


def make_client(handler) -> httpx.AsyncClient:
    """HTTP client that answers every request with ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=API_URL)


def make_png(width: int = 64, height: int = 64, color: str = 'red') -> bytes:
    """A small PNG image."""
    buffer = BytesIO()
    Image.new('RGB', (width, height), color=color).save(buffer, format='PNG')
    return buffer.getvalue()


@pytest.fixture
def mock_context():
    """Mock MCP context."""
    context = MagicMock()
    context.error = AsyncMock()
    context.info = AsyncMock()
    return context


@pytest.fixture
def temp_workspace_dir(tmp_path):
    """Temporary output directory."""
    workspace = tmp_path / 'output'
    workspace.mkdir()
    return str(workspace)


@pytest.fixture
def config(temp_workspace_dir):
    """Configuration with a 1 MB inline limit and no external channels."""
    return ServerConfig(
        gemini_api_key='test-key',
        output_dir=temp_workspace_dir,
        inline_limit_mb_raw='1',
    )


@pytest.fixture
def mock_notifier():
    """Notification dispatcher double recording every message."""
    notifier = MagicMock()
    notifier.notify = AsyncMock()
    notifier.is_configured.return_value = True
    notifier.describe_configured_channels.return_value = 'Telegram'
    return notifier


@pytest.fixture
def mock_file_store():
    """File API client double."""
    store = MagicMock()
    store.upload_file = AsyncMock()
    store.begin_upload = AsyncMock()
    store.send_bytes = AsyncMock()
    store.get_status = AsyncMock()
    store.list_files = AsyncMock()
    store.delete_file = AsyncMock()
    return store


@pytest.fixture
def log_messages():
    """Messages logged at DEBUG and above while the test runs."""
    messages = []
    handler_id = logger.add(messages.append, level='DEBUG', format='{message}')
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def png_bytes():
    """A 64x64 PNG."""
    return make_png()


@pytest.fixture
def sample_png_path(tmp_path, png_bytes):
    """Path of a small PNG on disk."""
    path = tmp_path / 'cat.png'
    path.write_bytes(png_bytes)
    return str(path)
