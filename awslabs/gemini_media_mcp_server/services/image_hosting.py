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
"""Publishing generated media to a CF ImgBed image host."""

import aiofiles
import httpx
import os
from awslabs.gemini_media_mcp_server.config import ServerConfig
from loguru import logger
from typing import Optional
from urllib.parse import urljoin, urlparse


async def upload_to_imgbed(
    client: httpx.AsyncClient, config: ServerConfig, file_path: str
) -> Optional[str]:
    """Upload a local file to the image host and return its public URL.

    Publishing is optional, so every failure is logged and reported as None
    rather than raised.

    Args:
        client: HTTP client to use.
        config: Server configuration holding the upload URL and auth code.
        file_path: Local file to upload.

    Returns:
        The public URL, or None if the host is not configured or the upload failed.
    """
    if not config.imgbed_configured:
        logger.debug('CF ImgBed URL or API key not configured, skipping upload')
        return None

    filename = os.path.basename(file_path)
    try:
        async with aiofiles.open(file_path, 'rb') as f:
            data = await f.read()
    except OSError as e:
        logger.error(f'Failed to read {file_path} for ImgBed upload: {e}')
        return None

    try:
        response = await client.post(
            config.cf_imgbed_upload_url,
            params={'authCode': config.cf_imgbed_api_key},
            files={'file': (filename, data)},
            timeout=config.request_timeout,
        )
        response.raise_for_status()
        payload = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f'Failed to upload {filename} to ImgBed: {e}')
        return None

    if not isinstance(payload, list) or not payload or not isinstance(payload[0], dict) or not payload[0].get('src'):
        logger.error(f'Unexpected ImgBed response format: {payload!r}')
        return None

    parsed = urlparse(config.cf_imgbed_upload_url)
    public_url = urljoin(f'{parsed.scheme}://{parsed.netloc}', payload[0]['src'])
    logger.info(f'Uploaded {filename} to ImgBed: {public_url}')
    return public_url
