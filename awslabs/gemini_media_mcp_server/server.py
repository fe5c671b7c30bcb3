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
"""Gemini Media MCP Server implementation."""

import os
import sys
from awslabs.gemini_media_mcp_server.config import ServerConfig
from awslabs.gemini_media_mcp_server.consts import (
    DEFAULT_PERSON_GENERATION,
    DEFAULT_VIDEO_ASPECT_RATIO,
    DEFAULT_VIDEO_DURATION_SECONDS,
    SERVER_INSTRUCTIONS,
)
from awslabs.gemini_media_mcp_server.errors import InputValidationError, describe_error
from awslabs.gemini_media_mcp_server.models.media import (
    FileInput,
    UrlSource,
    parse_file_input,
    parse_media_source,
)
from awslabs.gemini_media_mcp_server.runtime import ServerRuntime
from awslabs.gemini_media_mcp_server.services.coordinator import is_passthrough_url
from awslabs.gemini_media_mcp_server.services.file_management import delete_file, list_files
from awslabs.gemini_media_mcp_server.services.image_service import edit_image, generate_image
from awslabs.gemini_media_mcp_server.services.search_service import web_search
from awslabs.gemini_media_mcp_server.services.understanding_service import understand_media
from awslabs.gemini_media_mcp_server.services.video_service import (
    VideoGenerationRequest,
    generate_video,
)
from loguru import logger
from mcp.server.fastmcp import Context, FastMCP
from pydantic import Field, ValidationError
from typing import List, Optional


# Logging
logger.remove()
logger.add(sys.stderr, level=os.getenv('FASTMCP_LOG_LEVEL', 'WARNING'))


_runtime: Optional[ServerRuntime] = None


def get_runtime() -> ServerRuntime:
    """Return the process runtime, building it from the configuration on first use."""
    global _runtime
    if _runtime is None:
        _runtime = ServerRuntime(ServerConfig.load())
    return _runtime


def set_runtime(runtime: Optional[ServerRuntime]) -> None:
    """Install a runtime (or clear it so the next call rebuilds one)."""
    global _runtime
    _runtime = runtime


async def _report_failure(ctx: Context, action: str, error: Exception) -> str:
    message = f'Error {action}: {describe_error(error)}'
    logger.bind(error_type=type(error).__name__).error(message)
    await ctx.error(message)
    return message


# Create the MCP server with detailed instructions
mcp = FastMCP(
    'awslabs-gemini-media-mcp-server',
    instructions=SERVER_INSTRUCTIONS,
    dependencies=[
        'pydantic',
        'httpx',
        'aiofiles',
        'Pillow',
    ],
)


@mcp.tool(name='gemini_generate_image')
async def mcp_generate_image(
    ctx: Context,
    prompt: str = Field(description='Text description of the image to generate'),
) -> str:
    """Generate an image from a text prompt with a Gemini image model.

    The image is saved under the server's output directory and, when an image
    host is configured, published there too.

    Returns:
        JSON with localPath, cfImageUrl and cfUploadSuccess.
    """
    logger.debug(f"MCP tool gemini_generate_image called with prompt: '{prompt[:30]}...'")
    runtime = get_runtime()
    try:
        result = await generate_image(runtime.http_client, runtime.config, prompt)
        return result.to_json()
    except Exception as e:
        return await _report_failure(ctx, 'generating image', e)


@mcp.tool(name='gemini_edit_image')
async def mcp_edit_image(
    ctx: Context,
    prompt: str = Field(description='Instructions describing how to edit the image'),
    image_url: Optional[str] = Field(
        default=None, description='URL of the image to edit. Provide this or image_path.'
    ),
    image_path: Optional[str] = Field(
        default=None, description='Local path of the image to edit. Provide this or image_url.'
    ),
) -> str:
    """Edit an existing image following text instructions.

    Exactly one of image_url and image_path must be given. The image is sent
    inline, so it must not exceed the configured inline size limit.

    Returns:
        JSON with localPath, cfImageUrl and cfUploadSuccess.
    """
    logger.debug(f"MCP tool gemini_edit_image called with prompt: '{prompt[:30]}...'")
    runtime = get_runtime()
    try:
        source = parse_media_source(url=image_url, path=image_path, allow_remote=False)
        result = await edit_image(
            runtime.http_client, runtime.config, runtime.coordinator, prompt, source
        )
        return result.to_json()
    except Exception as e:
        return await _report_failure(ctx, 'editing image', e)


@mcp.tool(name='gemini_generate_video')
async def mcp_generate_video(
    ctx: Context,
    prompt: str = Field(description='Text description of the video to generate'),
    negative_prompt: Optional[str] = Field(
        default=None, description='What the video should not contain'
    ),
    aspect_ratio: str = Field(
        default=DEFAULT_VIDEO_ASPECT_RATIO, description="Aspect ratio, '16:9' or '9:16'"
    ),
    person_generation: str = Field(
        default=DEFAULT_PERSON_GENERATION,
        description="Whether people may appear, 'dont_allow' or 'allow_adult'",
    ),
    duration_seconds: int = Field(
        default=DEFAULT_VIDEO_DURATION_SECONDS, description='Length of the video in seconds (5-8)'
    ),
    enhance_prompt: bool = Field(
        default=True, description='Whether the service may enhance the prompt'
    ),
) -> str:
    """Generate a video with Veo and wait for it to finish.

    Generation usually takes minutes; the call returns once the video is saved.

    Returns:
        JSON with localPath, cfVideoUrl, cfUploadSuccess and operationName.
    """
    logger.debug(f"MCP tool gemini_generate_video called with prompt: '{prompt[:30]}...'")
    runtime = get_runtime()
    try:
        try:
            request = VideoGenerationRequest(
                prompt=prompt,
                negative_prompt=negative_prompt,
                aspect_ratio=aspect_ratio,
                person_generation=person_generation,
                duration_seconds=duration_seconds,
                enhance_prompt=enhance_prompt,
            )
        except ValidationError as e:
            raise InputValidationError(f'Invalid video parameters: {e.errors()[0]["msg"]}')
        result = await generate_video(runtime.http_client, runtime.config, request)
        return result.to_json()
    except Exception as e:
        return await _report_failure(ctx, 'generating video', e)


@mcp.tool(name='gemini_understand_media')
async def mcp_understand_media(
    ctx: Context,
    text: str = Field(description='Question or instructions about the files'),
    files: List[FileInput] = Field(
        description=(
            'Files to analyze. Each entry sets exactly one of url, path, or '
            'file_uri (with mime_type). YouTube URLs are passed to the model directly.'
        )
    ),
) -> str:
    """Answer questions about images, audio, video, documents or code.

    Files are sent inline and must not exceed the configured inline limit;
    larger files must first be uploaded with gemini_upload_large_media and
    referenced by the returned file_uri and mime_type.

    Returns:
        The model's text answer.
    """
    logger.debug(f'MCP tool gemini_understand_media called with {len(files)} file(s)')
    runtime = get_runtime()
    try:
        sources = [parse_file_input(file_input) for file_input in files]
        return await understand_media(
            runtime.http_client, runtime.config, runtime.coordinator, text, sources
        )
    except Exception as e:
        return await _report_failure(ctx, 'understanding media', e)


@mcp.tool(name='gemini_upload_large_media')
async def mcp_upload_large_media(
    ctx: Context,
    url: Optional[str] = Field(
        default=None, description='URL of the large file. Provide this or path.'
    ),
    path: Optional[str] = Field(
        default=None, description='Local path of the large file. Provide this or url.'
    ),
) -> str:
    """Upload a file larger than the inline limit to the Gemini File API in the background.

    Returns immediately. The outcome, including the file URI and MIME type to
    pass to gemini_understand_media, is delivered through the configured
    notification channel(s).

    Returns:
        Confirmation that the upload has started.
    """
    runtime = get_runtime()
    if not runtime.notifier.is_configured():
        message = (
            'Error: Notification system (OneBot/Telegram) must be configured in the MCP '
            "server's environment variables to use this tool."
        )
        logger.error(message)
        await ctx.error(message)
        return message
    try:
        source = parse_media_source(url=url, path=path, allow_remote=False)
        if isinstance(source, UrlSource) and is_passthrough_url(source.url):
            raise InputValidationError(
                f'{source.url} is read by Gemini directly; pass it to gemini_understand_media instead'
            )
    except Exception as e:
        return await _report_failure(ctx, 'uploading large media', e)

    runtime.coordinator.start_large_upload(source)
    return (
        f'Initiating background upload for large media: {source.describe()}. You will receive a '
        f'notification via {runtime.notifier.describe_configured_channels()} upon completion or failure.'
    )


@mcp.tool(name='gemini_list_files')
async def mcp_list_files(ctx: Context) -> str:
    """List the files stored in the Gemini File API.

    Returns:
        One entry per file with name, display name, MIME type, size, state, URI and expiry.
    """
    runtime = get_runtime()
    try:
        return await list_files(runtime.file_store)
    except Exception as e:
        return await _report_failure(ctx, 'listing files', e)


@mcp.tool(name='gemini_delete_file')
async def mcp_delete_file(
    ctx: Context,
    file_name: str = Field(description="Relative name of the file to delete, e.g. 'files/abc123'"),
) -> str:
    """Delete a file from the Gemini File API."""
    runtime = get_runtime()
    try:
        return await delete_file(runtime.file_store, file_name)
    except Exception as e:
        return await _report_failure(ctx, 'deleting file', e)


@mcp.tool(name='gemini_web_search')
async def mcp_web_search(
    ctx: Context,
    query: str = Field(description='The search query or question'),
) -> str:
    """Search the web with Google Search grounding.

    Returns:
        JSON with answerText and sources ([{title, uri}]).
    """
    runtime = get_runtime()
    try:
        return await web_search(runtime.http_client, runtime.config, query)
    except Exception as e:
        return await _report_failure(ctx, 'performing web search', e)


def main():
    """Run the MCP server with CLI argument support."""
    config = ServerConfig.load()
    missing = config.missing_required()
    if missing:
        logger.error(f'Missing required configuration: {", ".join(missing)}')
        sys.exit(1)
    set_runtime(ServerRuntime(config))
    logger.info('Starting gemini-media-mcp-server MCP server')
    mcp.run()


if __name__ == '__main__':
    main()
