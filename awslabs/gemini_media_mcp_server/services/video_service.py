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
"""Video generation with Veo long-running operations.

A generation is started with ``predictLongRunning``; the returned operation is
polled until ``done``. The finished video is either embedded in the response
or referenced by a URI that has to be downloaded.
"""

import asyncio
import base64
import httpx
from awslabs.gemini_media_mcp_server.config import ServerConfig
from awslabs.gemini_media_mcp_server.consts import (
    DEFAULT_PERSON_GENERATION,
    DEFAULT_VIDEO_ASPECT_RATIO,
    DEFAULT_VIDEO_DURATION_SECONDS,
    EXTENDED_TRANSFER_TIMEOUT_SECONDS,
    MAX_VIDEO_DURATION_SECONDS,
    MIN_VIDEO_DURATION_SECONDS,
    VIDEO_MAX_POLL_ATTEMPTS,
    VIDEO_POLL_INTERVAL_SECONDS,
    VIDEO_SUBFOLDER,
)
from awslabs.gemini_media_mcp_server.errors import (
    GeminiMediaError,
    InputValidationError,
    PollingTimedOutError,
    RemoteProcessingFailedError,
    TransferError,
    UpstreamApiError,
    describe_error,
)
from awslabs.gemini_media_mcp_server.models.common import VideoResult
from awslabs.gemini_media_mcp_server.services.gemini_common import api_path, parse_api_response
from awslabs.gemini_media_mcp_server.services.image_hosting import upload_to_imgbed
from awslabs.gemini_media_mcp_server.utils.file_utils import save_file, unique_name
from awslabs.gemini_media_mcp_server.utils.mime_utils import extension_from_url
from loguru import logger
from pydantic import BaseModel, Field
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
from urllib.parse import urlparse


class VideoGenerationRequest(BaseModel):
    """Parameters of one video generation.

    Attributes:
        prompt: Text description of the video.
        negative_prompt: What the video should not contain.
        aspect_ratio: '16:9' or '9:16'.
        person_generation: 'dont_allow' or 'allow_adult'.
        duration_seconds: Length of the video.
        enhance_prompt: Whether the service may rewrite the prompt.
    """
    prompt: str = Field(min_length=1)
    negative_prompt: Optional[str] = None
    aspect_ratio: str = DEFAULT_VIDEO_ASPECT_RATIO
    person_generation: str = DEFAULT_PERSON_GENERATION
    duration_seconds: int = Field(
        default=DEFAULT_VIDEO_DURATION_SECONDS,
        ge=MIN_VIDEO_DURATION_SECONDS,
        le=MAX_VIDEO_DURATION_SECONDS,
    )
    enhance_prompt: bool = True

    def to_payload(self) -> Dict[str, Any]:
        """Request body for predictLongRunning."""
        parameters: Dict[str, Any] = {
            'aspectRatio': self.aspect_ratio,
            'personGeneration': self.person_generation,
            'durationSeconds': self.duration_seconds,
            'enhance_prompt': self.enhance_prompt,
        }
        if self.negative_prompt:
            parameters['negativePrompt'] = self.negative_prompt
        return {'instances': [{'prompt': self.prompt}], 'parameters': parameters}


async def start_video_operation(
    client: httpx.AsyncClient, config: ServerConfig, request: VideoGenerationRequest
) -> str:
    """Start a generation and return the operation name."""
    response = await client.post(
        api_path(f'models/{config.video_model}:predictLongRunning'),
        params={'key': config.gemini_api_key},
        json=request.to_payload(),
        timeout=config.request_timeout,
    )
    data = parse_api_response(response)
    operation_name = data.get('name')
    if not operation_name:
        logger.error(f'No operation name received from Gemini: {str(data)[:500]}')
        raise UpstreamApiError('Failed to initiate video generation task: no operation name returned')
    logger.bind(operation=operation_name).info(f'Video generation started: {operation_name}')
    return operation_name


async def wait_for_operation(
    client: httpx.AsyncClient,
    config: ServerConfig,
    operation_name: str,
    poll_interval: float = VIDEO_POLL_INTERVAL_SECONDS,
    max_attempts: int = VIDEO_MAX_POLL_ATTEMPTS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Dict[str, Any]:
    """Poll an operation until it is done.

    Errors while polling are logged and retried.

    Returns:
        The ``response`` object of the finished operation.

    Raises:
        RemoteProcessingFailedError: If the operation finished with an error.
        GeminiMediaError: If the operation finished without a response.
        PollingTimedOutError: If the operation is not done after max_attempts.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            response = await client.get(
                api_path(operation_name),
                params={'key': config.gemini_api_key},
                timeout=config.request_timeout,
            )
            status = parse_api_response(response)
        except (GeminiMediaError, httpx.HTTPError) as e:
            logger.bind(operation=operation_name, attempt=attempt).warning(
                f'Error polling operation {operation_name}: {describe_error(e)}'
            )
            status = {}

        if status.get('done'):
            error = status.get('error')
            if error:
                raise RemoteProcessingFailedError(
                    f'Video generation failed: {error.get("message")} (Code: {error.get("code")})',
                    error_code='VideoGenerationFailed',
                )
            if not status.get('response'):
                raise GeminiMediaError('Video generation completed but no response data found')
            logger.bind(operation=operation_name).info(f'Operation {operation_name} completed')
            return status['response']

        logger.debug(f'Operation {operation_name} not done (attempt {attempt}/{max_attempts})')
        if attempt < max_attempts:
            await sleep(poll_interval)

    raise PollingTimedOutError(
        f'Video generation timed out after {int(max_attempts * poll_interval)} seconds'
    )


def extract_video(response: Dict[str, Any]) -> Tuple[Optional[bytes], Optional[str], str]:
    """Locate the video in a finished operation response.

    Returns:
        Tuple of (inline_bytes, uri, extension); exactly one of inline_bytes
        and uri is set.

    Raises:
        GeminiMediaError: If no video can be found.
    """
    samples = (response.get('generateVideoResponse') or {}).get('generatedSamples') or []
    for sample in samples:
        uri = (sample.get('video') or {}).get('uri')
        if uri:
            return None, uri, extension_from_url(uri) or '.mp4'

    candidates = response.get('candidates') or []
    parts = ((candidates[0].get('content') or {}).get('parts') or []) if candidates else []
    for part in parts:
        inline = part.get('inlineData') or {}
        mime_type = inline.get('mimeType') or ''
        if mime_type.startswith('video/') and inline.get('data'):
            return base64.b64decode(inline['data']), None, f'.{mime_type.split("/")[1] or "mp4"}'
        uri = part.get('uri')
        if uri and uri.lower().endswith('.mp4'):
            return None, uri, '.mp4'

    if response.get('videoUri'):
        uri = response['videoUri']
        return None, uri, extension_from_url(uri) or '.mp4'

    logger.error(f'No video data found in operation response: {str(response)[:500]}')
    raise GeminiMediaError('Video generation succeeded but no video data could be extracted')


async def fetch_video(client: httpx.AsyncClient, config: ServerConfig, uri: str) -> bytes:
    """Download a generated video, authenticating when it is served by the Gemini API."""
    params = {}
    if urlparse(uri).netloc == urlparse(config.gemini_api_url).netloc:
        params['key'] = config.gemini_api_key
    try:
        response = await client.get(
            uri, params=params, follow_redirects=True, timeout=EXTENDED_TRANSFER_TIMEOUT_SECONDS
        )
    except httpx.HTTPError as e:
        raise TransferError(f'Failed to download video from {uri}: {e}')
    if not response.is_success:
        raise TransferError(
            f'Failed to download video from {uri}: status {response.status_code}',
            status_code=response.status_code,
        )
    return response.content


async def generate_video(
    client: httpx.AsyncClient,
    config: ServerConfig,
    request: VideoGenerationRequest,
    poll_interval: float = VIDEO_POLL_INTERVAL_SECONDS,
    max_attempts: int = VIDEO_MAX_POLL_ATTEMPTS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> VideoResult:
    """Generate a video, wait for it, save it and optionally publish it.

    Args:
        client: HTTP client whose base URL is the Gemini API.
        config: Server configuration.
        request: Generation parameters.
        poll_interval: Seconds between operation polls.
        max_attempts: Polls before giving up.
        sleep: Awaitable delay used between polls.

    Returns:
        VideoResult with the local path, optional public URL and operation name.
    """
    if not request.prompt.strip():
        raise InputValidationError('Prompt must not be empty')

    operation_name = await start_video_operation(client, config, request)
    response = await wait_for_operation(
        client, config, operation_name, poll_interval, max_attempts, sleep
    )
    video_bytes, uri, extension = extract_video(response)
    if video_bytes is None:
        logger.info(f'Downloading generated video from {uri}')
        video_bytes = await fetch_video(client, config, uri)

    local_path = await save_file(
        config.output_dir, VIDEO_SUBFOLDER, unique_name('gemini-vid', extension), video_bytes
    )
    cf_video_url = await upload_to_imgbed(client, config, local_path)
    logger.bind(operation=operation_name, path=local_path).info(f'Video saved to {local_path}')
    return VideoResult(
        local_path=local_path,
        cf_video_url=cf_video_url,
        cf_upload_success=cf_video_url is not None,
        operation_name=operation_name,
    )
