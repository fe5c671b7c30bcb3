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
"""Multimodal understanding over one or more media files."""

import httpx
from awslabs.gemini_media_mcp_server.config import ServerConfig
from awslabs.gemini_media_mcp_server.errors import InputValidationError, UpstreamApiError
from awslabs.gemini_media_mcp_server.models.media import MediaSource
from awslabs.gemini_media_mcp_server.services.coordinator import MediaCoordinator
from awslabs.gemini_media_mcp_server.services.gemini_common import extract_text, generate_content
from loguru import logger
from typing import Sequence


EMPTY_TEXT_RESPONSE = '(Model returned empty text content)'


async def understand_media(
    client: httpx.AsyncClient,
    config: ServerConfig,
    coordinator: MediaCoordinator,
    text: str,
    sources: Sequence[MediaSource],
) -> str:
    """Ask the understanding model about one or more files.

    All sources are resolved concurrently; if any of them fails the whole
    request fails before the model is called.

    Args:
        client: HTTP client whose base URL is the Gemini API.
        config: Server configuration.
        coordinator: Resolves sources into request parts.
        text: Question or instructions about the files.
        sources: Parsed media sources.

    Returns:
        The model's text answer.
    """
    if not sources:
        raise InputValidationError('At least one file must be provided')

    plans = await coordinator.resolve_many(sources)
    payload = {'contents': [{'parts': [{'text': text}] + [plan.to_part() for plan in plans]}]}

    logger.bind(model=config.understanding_model, plans=[plan.kind for plan in plans]).info(
        f'Calling {config.understanding_model} with {len(plans)} file(s)'
    )
    response = await generate_content(
        client,
        config.gemini_api_key,
        config.understanding_model,
        payload,
        timeout=config.request_timeout,
    )

    answer = extract_text(response)
    if answer:
        return answer
    if response.get('candidates'):
        logger.warning('Gemini response contained candidates but no text parts')
        return EMPTY_TEXT_RESPONSE
    raise UpstreamApiError('Invalid response structure from Gemini API: no candidates returned')
