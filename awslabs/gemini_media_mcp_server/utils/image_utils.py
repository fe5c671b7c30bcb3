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
"""Image processing utilities for decoding and validation."""

import base64
from io import BytesIO
from PIL import Image
from typing import Optional, Tuple


_FORMAT_MIME_TYPES = {
    'PNG': 'image/png',
    'JPEG': 'image/jpeg',
    'WEBP': 'image/webp',
    'GIF': 'image/gif',
    'HEIF': 'image/heif',
}

_MIME_EXTENSIONS = {
    'image/png': '.png',
    'image/jpeg': '.jpg',
    'image/webp': '.webp',
    'image/gif': '.gif',
    'image/heic': '.heic',
    'image/heif': '.heif',
}


def decode_base64_image(base64_str: str) -> bytes:
    """Decode a base64 string to image bytes.

    Args:
        base64_str: Base64-encoded image string.

    Returns:
        Raw image bytes.

    Raises:
        ValueError: If the base64 string is invalid.
    """
    try:
        return base64.b64decode(base64_str, validate=True)
    except Exception as e:
        raise ValueError(f'Failed to decode base64 image: {str(e)}')


def inspect_image(image_data: bytes) -> Tuple[int, int, Optional[str]]:
    """Check that bytes hold a readable image.

    This is used before sending an image for editing, so that a corrupt or
    mislabeled file is rejected locally instead of by the API.

    Args:
        image_data: Raw image bytes.

    Returns:
        Tuple of (width, height, mime_type). mime_type is None for formats
        without a known MIME mapping.

    Raises:
        ValueError: If the data cannot be opened as an image.
    """
    try:
        with Image.open(BytesIO(image_data)) as image:
            image.verify()
            width, height = image.size
            image_format = image.format
    except Exception as e:
        raise ValueError(f'Data is not a valid image: {str(e)}')
    return width, height, _FORMAT_MIME_TYPES.get(image_format or '')


def extension_for_image_mime(mime_type: Optional[str], default: str = '.png') -> str:
    """File extension for an image MIME type returned by the model."""
    return _MIME_EXTENSIONS.get((mime_type or '').lower(), default)
