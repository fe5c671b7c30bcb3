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
"""Server configuration.

Settings come from, in order of priority, ``-e KEY VALUE`` command-line pairs,
the process environment, and a ``.env`` file. The resulting ``ServerConfig`` is
built once at startup and handed to every component that needs it.
"""

import os
import sys
from awslabs.gemini_media_mcp_server.consts import (
    DEFAULT_GEMINI_API_URL,
    DEFAULT_IMAGE_GEN_MODEL,
    DEFAULT_INLINE_LIMIT_MB,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_REQUEST_TIMEOUT_MS,
    DEFAULT_SEARCH_MODEL,
    DEFAULT_UNDERSTANDING_MODEL,
    DEFAULT_VIDEO_MODEL,
    GEMINI_MAX_INLINE_SIZE_BYTES,
)
from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, List, Mapping, Optional


ONEBOT_MESSAGE_TYPES = ('private', 'group')


def parse_cli_args(argv: List[str]) -> Dict[str, str]:
    """Collect ``-e KEY VALUE`` pairs from the command line.

    Args:
        argv: Arguments without the program name.

    Returns:
        Mapping of setting names to values. Unrelated arguments are ignored.
    """
    parsed: Dict[str, str] = {}
    i = 0
    while i < len(argv):
        if argv[i] == '-e' and i + 2 < len(argv):
            parsed[argv[i + 1]] = argv[i + 2]
            i += 3
        else:
            i += 1
    return parsed


class ServerConfig(BaseModel):
    """Process-wide settings for the Gemini media server.

    Attributes:
        gemini_api_key: API key sent with every Gemini request.
        gemini_api_url: Base URL of the Gemini API (or a compatible proxy).
        image_gen_model: Model used for image generation and editing.
        understanding_model: Model used for multimodal understanding.
        search_model: Model used for grounded web search.
        video_model: Model used for video generation.
        output_dir: Directory under which generated and temporary files are written.
        request_timeout_ms: Timeout for ordinary HTTP calls, in milliseconds.
        inline_limit_mb_raw: User-supplied inline size limit, before validation.
        cf_imgbed_upload_url: Image host upload endpoint.
        cf_imgbed_api_key: Image host auth code.
        onebot_http_url: OneBot v11 HTTP API base URL.
        onebot_access_token: Optional OneBot bearer token.
        onebot_message_type: 'private' or 'group'.
        onebot_target_id: User or group id receiving OneBot messages.
        telegram_bot_token: Telegram bot token.
        telegram_chat_id: Telegram chat receiving messages.
    """

    model_config = ConfigDict(frozen=True)

    gemini_api_key: Optional[str] = None
    gemini_api_url: str = DEFAULT_GEMINI_API_URL
    image_gen_model: str = DEFAULT_IMAGE_GEN_MODEL
    understanding_model: str = DEFAULT_UNDERSTANDING_MODEL
    search_model: str = DEFAULT_SEARCH_MODEL
    video_model: str = DEFAULT_VIDEO_MODEL
    output_dir: str = DEFAULT_OUTPUT_DIR
    request_timeout_ms: int = Field(default=DEFAULT_REQUEST_TIMEOUT_MS, gt=0)
    inline_limit_mb_raw: Optional[str] = None
    cf_imgbed_upload_url: Optional[str] = None
    cf_imgbed_api_key: Optional[str] = None
    onebot_http_url: Optional[str] = None
    onebot_access_token: Optional[str] = None
    onebot_message_type: Optional[str] = None
    onebot_target_id: Optional[str] = None
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None

    @field_validator('gemini_api_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so paths can be appended directly."""
        v = v.rstrip('/')
        if v.endswith('/v1beta'):
            v = v[: -len('/v1beta')]
        return v

    @classmethod
    def from_mapping(cls, values: Mapping[str, str]) -> 'ServerConfig':
        """Build a configuration from environment-style keys.

        Args:
            values: Mapping using the documented variable names (e.g. GEMINI_API_KEY).

        Returns:
            A validated ServerConfig.
        """

        def get(key: str, default: Optional[str] = None) -> Optional[str]:
            value = values.get(key)
            return value if value else default

        timeout_raw = get('REQUEST_TIMEOUT', str(DEFAULT_REQUEST_TIMEOUT_MS))
        try:
            timeout_ms = int(timeout_raw)
        except (TypeError, ValueError):
            logger.warning(f'Invalid REQUEST_TIMEOUT {timeout_raw!r}, using default')
            timeout_ms = DEFAULT_REQUEST_TIMEOUT_MS
        if timeout_ms <= 0:
            timeout_ms = DEFAULT_REQUEST_TIMEOUT_MS

        return cls(
            gemini_api_key=get('GEMINI_API_KEY'),
            gemini_api_url=get('GEMINI_API_URL', DEFAULT_GEMINI_API_URL),
            image_gen_model=get('GEMINI_IMAGE_GEN_MODEL', DEFAULT_IMAGE_GEN_MODEL),
            understanding_model=get('GEMINI_UNDERSTANDING_MODEL', DEFAULT_UNDERSTANDING_MODEL),
            search_model=get('GEMINI_SEARCH_MODEL', DEFAULT_SEARCH_MODEL),
            video_model=get('GEMINI_VIDEO_MODEL', DEFAULT_VIDEO_MODEL),
            output_dir=get('DEFAULT_OUTPUT_DIR', DEFAULT_OUTPUT_DIR),
            request_timeout_ms=timeout_ms,
            inline_limit_mb_raw=get('UNDERSTAND_MEDIA_SIZE_LIMIT_MB'),
            cf_imgbed_upload_url=get('CF_IMGBED_UPLOAD_URL'),
            cf_imgbed_api_key=get('CF_IMGBED_API_KEY'),
            onebot_http_url=get('ONEBOT_HTTP_URL'),
            onebot_access_token=get('ONEBOT_ACCESS_TOKEN'),
            onebot_message_type=get('ONEBOT_MESSAGE_TYPE'),
            onebot_target_id=get('ONEBOT_TARGET_ID'),
            telegram_bot_token=get('TELEGRAM_BOT_TOKEN'),
            telegram_chat_id=get('TELEGRAM_CHAT_ID'),
        )

    @classmethod
    def load(cls, argv: Optional[List[str]] = None) -> 'ServerConfig':
        """Load configuration from the command line, environment and ``.env``.

        Args:
            argv: Command-line arguments without the program name. Defaults to sys.argv[1:].

        Returns:
            A validated ServerConfig.
        """
        load_dotenv()
        values: Dict[str, str] = dict(os.environ)
        values.update(parse_cli_args(sys.argv[1:] if argv is None else argv))
        config = cls.from_mapping(values)
        logger.info(
            f'Effective inline size limit: {config.inline_limit_mb:g} MB ({config.inline_limit_bytes} bytes)'
        )
        return config

    @property
    def request_timeout(self) -> float:
        """Ordinary request timeout in seconds."""
        return self.request_timeout_ms / 1000

    @property
    def notification_timeout(self) -> float:
        """Timeout for notification delivery in seconds."""
        return self.request_timeout / 2

    @property
    def inline_limit_bytes(self) -> int:
        """Inline threshold in bytes, capped by the API's hard ceiling."""
        try:
            limit_mb = int(self.inline_limit_mb_raw or DEFAULT_INLINE_LIMIT_MB)
        except ValueError:
            limit_mb = DEFAULT_INLINE_LIMIT_MB
        if limit_mb <= 0:
            limit_mb = DEFAULT_INLINE_LIMIT_MB
        return min(limit_mb * 1024 * 1024, GEMINI_MAX_INLINE_SIZE_BYTES)

    @property
    def inline_limit_mb(self) -> float:
        """Inline threshold in megabytes, for messages."""
        return self.inline_limit_bytes / 1024 / 1024

    @property
    def onebot_configured(self) -> bool:
        """Whether every setting the OneBot channel needs is present and valid."""
        return bool(
            self.onebot_http_url
            and self.onebot_target_id
            and self.onebot_message_type in ONEBOT_MESSAGE_TYPES
        )

    @property
    def telegram_configured(self) -> bool:
        """Whether the Telegram channel has a token and a chat id."""
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @property
    def imgbed_configured(self) -> bool:
        """Whether generated media can be published to the image host."""
        return bool(self.cf_imgbed_upload_url and self.cf_imgbed_api_key)

    def missing_required(self) -> List[str]:
        """Names of required settings that are absent."""
        missing = []
        if not self.gemini_api_key:
            missing.append('GEMINI_API_KEY')
        if not self.gemini_api_url:
            missing.append('GEMINI_API_URL')
        return missing
