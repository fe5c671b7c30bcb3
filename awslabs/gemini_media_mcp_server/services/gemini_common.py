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
"""Common utilities for calling the Gemini REST API.

This module provides the shared ``generateContent`` invocation, structured
error parsing, and helpers that pull text and inline media out of responses.
"""

import httpx
from awslabs.gemini_media_mcp_server.consts import GEMINI_API_VERSION
from awslabs.gemini_media_mcp_server.errors import UpstreamApiError
from awslabs.gemini_media_mcp_server.models.common import error_payload
from loguru import logger
from typing import Any, Dict, List, Optional, Tuple


def api_path(path: str) -> str:
    """Prefix a resource path with the API version, e.g. 'models/x' -> '/v1beta/models/x'."""
    return f'/{GEMINI_API_VERSION}/{path.lstrip("/")}'


def parse_api_response(response: httpx.Response) -> Dict[str, Any]:
    """Decode a Gemini API response, raising on structured or HTTP errors.

    Args:
        response: The HTTP response.

    Returns:
        The decoded JSON body (an empty dict for empty bodies).

    Raises:
        UpstreamApiError: If the body carries an ``error`` object.
        httpx.HTTPStatusError: If the status is not a success and the body is unstructured.
    """
    try:
        data = response.json() if response.content else {}
    except ValueError:
        data = {}

    error = error_payload(data)
    if error is not None:
        logger.bind(
            status_code=response.status_code,
            error_code=error.get('code'),
            error_message=error.get('message'),
        ).error(f'Gemini API error: {error.get("status")}')
        raise UpstreamApiError(
            error.get('message', 'Unknown error'),
            code=error.get('code', response.status_code),
            status=error.get('status'),
        )

    response.raise_for_status()
    return data if isinstance(data, dict) else {'data': data}


async def generate_content(
    client: httpx.AsyncClient,
    api_key: str,
    model: str,
    payload: Dict[str, Any],
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Invoke ``models/{model}:generateContent``.

    Args:
        client: HTTP client whose base URL points at the Gemini API.
        api_key: Gemini API key.
        model: Model name, e.g. 'gemini-2.0-flash'.
        payload: Request body with ``contents`` and optional config.
        timeout: Overrides the client timeout, in seconds.

    Returns:
        The decoded response.

    Raises:
        UpstreamApiError: On a structured API error.
        httpx.HTTPError: On transport failures or unstructured error statuses.
    """
    logger.bind(model=model, request_keys=list(payload.keys())).debug(
        f'Invoking Gemini model: {model}'
    )
    kwargs: Dict[str, Any] = {'params': {'key': api_key}, 'json': payload}
    if timeout is not None:
        kwargs['timeout'] = timeout
    response = await client.post(api_path(f'models/{model}:generateContent'), **kwargs)
    data = parse_api_response(response)
    logger.bind(model=model, candidates_count=len(data.get('candidates') or [])).info(
        f'Gemini API call successful for model: {model}'
    )
    return data


def candidate_parts(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Parts of the first candidate, or an empty list."""
    candidates = data.get('candidates') or []
    if not candidates:
        return []
    content = candidates[0].get('content') or {}
    return [part for part in content.get('parts') or [] if isinstance(part, dict)]


def extract_text(data: Dict[str, Any]) -> str:
    """Join the text parts of the first candidate with newlines."""
    return '\n'.join(part['text'] for part in candidate_parts(data) if part.get('text'))


def find_inline_data(
    data: Dict[str, Any], mime_prefix: str = 'image/'
) -> Optional[Tuple[str, str]]:
    """Find the first inline media part whose MIME type starts with ``mime_prefix``.

    The API answers in camelCase (``inlineData``); snake_case is accepted too.

    Returns:
        Tuple of (mime_type, base64_data), or None.
    """
    for part in candidate_parts(data):
        inline = part.get('inlineData') or part.get('inline_data')
        if not inline:
            continue
        mime_type = inline.get('mimeType') or inline.get('mime_type') or ''
        if mime_type.startswith(mime_prefix) and inline.get('data'):
            return mime_type, inline['data']
    return None
