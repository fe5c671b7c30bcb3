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
"""MIME type helpers for downloaded and local media files."""

import mimetypes
import os
from awslabs.gemini_media_mcp_server.consts import (
    GENERIC_CONTENT_TYPE_PREFIX,
    RELIABLE_APPLICATION_TYPES,
    SUPPORTED_MIME_TYPES,
)
from loguru import logger
from typing import Optional
from urllib.parse import urlparse


# Types the platform tables often lack or map differently from what Gemini expects.
_EXTRA_TYPES = {
    '.mp3': 'audio/mp3',
    '.md': 'text/markdown',
    '.heic': 'image/heic',
    '.heif': 'image/heif',
    '.webp': 'image/webp',
    '.flac': 'audio/flac',
    '.aac': 'audio/aac',
    '.aiff': 'audio/aiff',
    '.flv': 'video/x-flv',
    '.3gp': 'video/3gpp',
    '.webm': 'video/webm',
}

_PREFERRED_EXTENSIONS = {
    'image/jpeg': '.jpg',
    'audio/mpeg': '.mp3',
    'audio/mp3': '.mp3',
    'video/mp4': '.mp4',
    'video/quicktime': '.mov',
    'video/webm': '.webm',
    'text/plain': '.txt',
}


def normalize_content_type(content_type: Optional[str]) -> Optional[str]:
    """Strip parameters (e.g. charset) and lowercase a Content-Type header value."""
    if not content_type:
        return None
    main_type = content_type.split(';')[0].strip().lower()
    return main_type or None


def guess_mime_type(path: str) -> Optional[str]:
    """Guess the MIME type of a file from its extension.

    ``.mp3`` files are reported as ``audio/mp3`` rather than ``audio/mpeg``,
    which is the spelling the Gemini API accepts.

    Args:
        path: File path or name.

    Returns:
        The MIME type, or None when the extension is unknown.
    """
    extension = os.path.splitext(path)[1].lower()
    if extension in _EXTRA_TYPES:
        return _EXTRA_TYPES[extension]
    mime_type, _ = mimetypes.guess_type(path, strict=False)
    return mime_type


def extension_for_content_type(content_type: Optional[str]) -> Optional[str]:
    """Map a response Content-Type to a file extension.

    Generic ``application/*`` types say nothing reliable about media content
    (servers send ``application/octet-stream`` for everything), so they are
    rejected, with the exception of PDF.

    Args:
        content_type: Raw Content-Type header value.

    Returns:
        An extension including the dot, or None if none can be trusted.
    """
    main_type = normalize_content_type(content_type)
    if not main_type:
        return None
    if main_type.startswith(GENERIC_CONTENT_TYPE_PREFIX) and main_type not in RELIABLE_APPLICATION_TYPES:
        logger.warning(f"Content-Type '{content_type}' is not reliable for media, ignoring")
        return None
    if main_type in _PREFERRED_EXTENSIONS:
        return _PREFERRED_EXTENSIONS[main_type]
    for extension, mime_type in _EXTRA_TYPES.items():
        if mime_type == main_type:
            return extension
    return mimetypes.guess_extension(main_type, strict=False)


def extension_from_url(url: str) -> Optional[str]:
    """Return the extension of the URL path, if it has a sensible one."""
    extension = os.path.splitext(urlparse(url).path)[1].lower()
    if extension and 1 < len(extension) <= 6 and extension[1:].isalnum():
        return extension
    return None


def is_supported_mime_type(mime_type: Optional[str]) -> bool:
    """Whether Gemini accepts this MIME type for understanding requests."""
    return bool(mime_type) and mime_type in SUPPORTED_MIME_TYPES
