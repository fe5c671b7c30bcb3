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
"""Web search through Gemini's Google Search grounding tool."""

import httpx
import json
from awslabs.gemini_media_mcp_server.config import ServerConfig
from awslabs.gemini_media_mcp_server.consts import WEB_SEARCH_PREFIX
from awslabs.gemini_media_mcp_server.errors import InputValidationError
from awslabs.gemini_media_mcp_server.services.gemini_common import candidate_parts, generate_content
from loguru import logger
from typing import Any, Dict, List


def extract_sources(response: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Title and URI of every web grounding chunk of the first candidate."""
    candidates = response.get('candidates') or []
    if not candidates:
        return []
    chunks = (candidates[0].get('groundingMetadata') or {}).get('groundingChunks') or []
    return [
        {'title': chunk['web'].get('title'), 'uri': chunk['web'].get('uri')}
        for chunk in chunks
        if chunk.get('web')
    ]


async def web_search(client: httpx.AsyncClient, config: ServerConfig, query: str) -> str:
    """Answer a query with Google Search grounding.

    Returns:
        JSON text with ``answerText`` and ``sources`` ([{title, uri}]).
    """
    if not query or not query.strip():
        raise InputValidationError('Query must not be empty')

    payload = {
        'contents': [{'parts': [{'text': f'{WEB_SEARCH_PREFIX}{query}'}]}],
        'tools': [{'google_search': {}}],
    }
    logger.info(f'Searching the web with {config.search_model}')
    response = await generate_content(
        client, config.gemini_api_key, config.search_model, payload, timeout=config.request_timeout
    )

    parts = candidate_parts(response)
    answer_text = parts[0].get('text') if parts else None
    result = {
        'answerText': answer_text or 'No answer text found.',
        'sources': extract_sources(response),
    }
    return json.dumps(result, indent=2, ensure_ascii=False)
