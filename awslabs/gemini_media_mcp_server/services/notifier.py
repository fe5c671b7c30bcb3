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
"""Best-effort notification delivery to OneBot and Telegram.

Background uploads have no caller left to answer, so their outcome is pushed
to whichever chat channels are configured. Delivery never raises: each
channel's failure is logged on its own and does not affect the others.
"""

import asyncio
import httpx
from awslabs.gemini_media_mcp_server.config import ServerConfig
from awslabs.gemini_media_mcp_server.consts import TELEGRAM_API_URL
from loguru import logger
from typing import Any, Dict, List, Optional, Sequence


class OneBotChannel:
    """OneBot v11 HTTP API channel (send_private_msg / send_group_msg)."""

    name = 'OneBot'

    def __init__(
        self,
        client: httpx.AsyncClient,
        http_url: str,
        message_type: str,
        target_id: str,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize the channel.

        Args:
            client: HTTP client used for delivery.
            http_url: Base URL of the OneBot HTTP API.
            message_type: 'private' or 'group'.
            target_id: User id or group id to message.
            access_token: Optional bearer token.
            timeout: Request timeout in seconds.
        """
        self.client = client
        self.http_url = http_url.rstrip('/')
        self.message_type = message_type
        self.target_id = target_id
        self.access_token = access_token
        self.timeout = timeout

    def build_request(self, message: str) -> Dict[str, Any]:
        """Return the URL, JSON body and headers for one message."""
        target: Any = int(self.target_id) if self.target_id.strip().isdigit() else self.target_id
        if self.message_type == 'private':
            action, body = 'send_private_msg', {'user_id': target, 'message': message}
        else:
            action, body = 'send_group_msg', {'group_id': target, 'message': message}
        headers = {'Content-Type': 'application/json'}
        if self.access_token:
            headers['Authorization'] = f'Bearer {self.access_token}'
        return {'url': f'{self.http_url}/{action}', 'json': body, 'headers': headers}

    async def send(self, message: str) -> None:
        """Deliver a message; raises on failure."""
        request = self.build_request(message)
        logger.debug(f'Sending OneBot {self.message_type} notification to {self.target_id}')
        response = await self.client.post(timeout=self.timeout, **request)
        response.raise_for_status()


class TelegramChannel:
    """Telegram Bot API channel (sendMessage with Markdown)."""

    name = 'Telegram'

    def __init__(
        self,
        client: httpx.AsyncClient,
        bot_token: str,
        chat_id: str,
        timeout: Optional[float] = None,
        api_url: str = TELEGRAM_API_URL,
    ):
        """Initialize the channel.

        Args:
            client: HTTP client used for delivery.
            bot_token: Bot token issued by BotFather.
            chat_id: Chat receiving the messages.
            timeout: Request timeout in seconds.
            api_url: Telegram Bot API base URL.
        """
        self.client = client
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout
        self.api_url = api_url.rstrip('/')

    async def send(self, message: str) -> None:
        """Deliver a message; raises on failure."""
        logger.debug(f'Sending Telegram notification to chat {self.chat_id}')
        response = await self.client.post(
            f'{self.api_url}/bot{self.bot_token}/sendMessage',
            json={'chat_id': self.chat_id, 'text': message, 'parse_mode': 'Markdown'},
            timeout=self.timeout,
        )
        response.raise_for_status()


class NotificationDispatcher:
    """Fans a message out to every configured channel."""

    def __init__(self, channels: Sequence[Any]):
        """Initialize the dispatcher with already configured channels."""
        self.channels: List[Any] = list(channels)

    @classmethod
    def from_config(cls, config: ServerConfig, client: httpx.AsyncClient) -> 'NotificationDispatcher':
        """Build the channels whose settings are complete."""
        channels: List[Any] = []
        if config.onebot_configured:
            channels.append(
                OneBotChannel(
                    client,
                    http_url=config.onebot_http_url,
                    message_type=config.onebot_message_type,
                    target_id=config.onebot_target_id,
                    access_token=config.onebot_access_token,
                    timeout=config.notification_timeout,
                )
            )
        elif config.onebot_http_url:
            logger.warning(
                'OneBot URL is set but ONEBOT_MESSAGE_TYPE must be private or group '
                'and ONEBOT_TARGET_ID must be set; OneBot notifications disabled'
            )
        if config.telegram_configured:
            channels.append(
                TelegramChannel(
                    client,
                    bot_token=config.telegram_bot_token,
                    chat_id=config.telegram_chat_id,
                    timeout=config.notification_timeout,
                )
            )
        return cls(channels)

    def is_configured(self) -> bool:
        """Whether at least one channel can deliver messages."""
        return bool(self.channels)

    def describe_configured_channels(self) -> str:
        """Channel names joined with '/', or 'none'."""
        if not self.channels:
            return 'none'
        return '/'.join(channel.name for channel in self.channels)

    async def notify(self, message: str) -> None:
        """Deliver a message to every channel. Never raises."""
        if not self.channels:
            logger.warning('No notification channel configured, message dropped')
            return
        results = await asyncio.gather(
            *(channel.send(message) for channel in self.channels), return_exceptions=True
        )
        for channel, result in zip(self.channels, results):
            if isinstance(result, BaseException):
                logger.bind(channel=channel.name).error(
                    f'Failed to send {channel.name} notification: {result}'
                )
            else:
                logger.bind(channel=channel.name).info(f'{channel.name} notification sent')
