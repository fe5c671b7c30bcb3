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
"""Process-wide collaborators built once from the server configuration."""

import httpx
from awslabs.gemini_media_mcp_server.config import ServerConfig
from awslabs.gemini_media_mcp_server.services.coordinator import MediaCoordinator
from awslabs.gemini_media_mcp_server.services.file_store import GeminiFileStore
from awslabs.gemini_media_mcp_server.services.notifier import NotificationDispatcher
from loguru import logger
from typing import Optional


class ServerRuntime:
    """Owns the shared HTTP client and the services built on top of it.

    Attributes:
        config: The server configuration.
        http_client: Shared client; its base URL is the Gemini API URL.
        file_store: Gemini File API client.
        notifier: Notification dispatcher for background outcomes.
        coordinator: Media resolution and background upload coordinator.
    """

    def __init__(self, config: ServerConfig, http_client: Optional[httpx.AsyncClient] = None):
        """Wire the services for a configuration.

        Args:
            config: The server configuration.
            http_client: Client to use instead of a newly created one.
        """
        self.config = config
        self.http_client = http_client or httpx.AsyncClient(
            base_url=config.gemini_api_url, timeout=config.request_timeout
        )
        self.file_store = GeminiFileStore(
            self.http_client, config.gemini_api_key, config.request_timeout
        )
        self.notifier = NotificationDispatcher.from_config(config, self.http_client)
        self.coordinator = MediaCoordinator(
            file_store=self.file_store,
            notifier=self.notifier,
            http_client=self.http_client,
            inline_limit_bytes=config.inline_limit_bytes,
            output_dir=config.output_dir,
        )
        logger.bind(
            api_url=config.gemini_api_url,
            notifiers=self.notifier.describe_configured_channels(),
            inline_limit_bytes=config.inline_limit_bytes,
        ).info('Server runtime initialized')

    @property
    def background_tasks(self):
        """In-flight background uploads."""
        return self.coordinator.background_tasks

    async def aclose(self) -> None:
        """Close the shared HTTP client."""
        await self.http_client.aclose()
