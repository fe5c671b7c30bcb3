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
"""Image generation and editing with Gemini image models."""

import base64
import httpx
from awslabs.gemini_media_mcp_server.config import ServerConfig
from awslabs.gemini_media_mcp_server.consts import IMAGE_SUBFOLDER
from awslabs.gemini_media_mcp_server.errors import InputValidationError, UpstreamApiError
from awslabs.gemini_media_mcp_server.models.common import MediaResult
from awslabs.gemini_media_mcp_server.models.media import InlinePlan, LocalPathSource, UrlSource
from awslabs.gemini_media_mcp_server.services.coordinator import MediaCoordinator
from awslabs.gemini_media_mcp_server.services.gemini_common import find_inline_data, generate_content
from awslabs.gemini_media_mcp_server.services.image_hosting import upload_to_imgbed
from awslabs.gemini_media_mcp_server.utils.file_utils import save_file, unique_name
from awslabs.gemini_media_mcp_server.utils.image_utils import (
    decode_base64_image,
    extension_for_image_mime,
    inspect_image,
)
from loguru import logger
from typing import Any, Dict, List, Union


def build_image_request(parts: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Request body asking the model to answer with text and an image."""
    return {
        'contents': [{'parts': parts}],
        'generationConfig': {'responseModalities': ['TEXT', 'IMAGE']},
    }


async def _save_generated_image(
    client: httpx.AsyncClient,
    config: ServerConfig,
    response: Dict[str, Any],
    prefix: str,
) -> MediaResult:
    found = find_inline_data(response, 'image/')
    if found is None:
        logger.error(f'No image data found in Gemini response: {str(response)[:500]}')
        raise UpstreamApiError('No image data found in the model response')
    mime_type, data = found

    image_bytes = decode_base64_image(data)
    filename = unique_name(prefix, extension_for_image_mime(mime_type))
    local_path = await save_file(config.output_dir, IMAGE_SUBFOLDER, filename, image_bytes)

    cf_image_url = await upload_to_imgbed(client, config, local_path)
    return MediaResult(
        local_path=local_path,
        cf_image_url=cf_image_url,
        cf_upload_success=cf_image_url is not None,
    )


async def generate_image(client: httpx.AsyncClient, config: ServerConfig, prompt: str) -> MediaResult:
    """Generate an image from a prompt and save it under the image output folder.

    Args:
        client: HTTP client whose base URL is the Gemini API.
        config: Server configuration.
        prompt: Text description of the image.

    Returns:
        MediaResult with the local path and optional public URL.
    """
    if not prompt or not prompt.strip():
        raise InputValidationError('Prompt must not be empty')
    logger.info(f'Generating image with {config.image_gen_model}')
    response = await generate_content(
        client,
        config.gemini_api_key,
        config.image_gen_model,
        build_image_request([{'text': prompt}]),
        timeout=config.request_timeout,
    )
    return await _save_generated_image(client, config, response, 'gemini-gen')


async def edit_image(
    client: httpx.AsyncClient,
    config: ServerConfig,
    coordinator: MediaCoordinator,
    prompt: str,
    source: Union[UrlSource, LocalPathSource],
) -> MediaResult:
    """Edit an image following text instructions.

    The source image is always sent inline; it must be an image within the
    inline limit and must decode as an image.

    Args:
        client: HTTP client whose base URL is the Gemini API.
        config: Server configuration.
        coordinator: Resolves the source into inline bytes.
        prompt: Editing instructions.
        source: The image to edit.

    Returns:
        MediaResult with the local path of the edited image.
    """
    if not prompt or not prompt.strip():
        raise InputValidationError('Prompt must not be empty')

    plan = await coordinator.resolve(source, mime_prefix='image/')
    if not isinstance(plan, InlinePlan):
        raise InputValidationError(f'Image {source.describe()} cannot be sent inline')
    try:
        inspect_image(base64.b64decode(plan.data))
    except ValueError as e:
        raise InputValidationError(f'Invalid image {source.describe()}: {e}')

    logger.info(f'Editing image {source.describe()} with {config.image_gen_model}')
    response = await generate_content(
        client,
        config.gemini_api_key,
        config.image_gen_model,
        build_image_request([{'text': prompt}, plan.to_part()]),
        timeout=config.request_timeout,
    )
    return await _save_generated_image(client, config, response, 'gemini-edit')
