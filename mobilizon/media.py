"""Media upload through Mobilizon's GraphQL multipart endpoint."""
import base64
import json
import logging
import mimetypes
import os
from typing import Tuple
from urllib.parse import unquote_to_bytes

from mobilizon.graphql_client import GraphQLError, parse_graphql_response

logger = logging.getLogger(__name__)

UPLOAD_MEDIA_MUTATION = (
    "mutation uploadMedia($file: Upload!, $name: String!) "
    "{ uploadMedia(file: $file, name: $name) { uuid } }"
)

FILE_FIELD = 'image1'


class MediaUploadError(Exception):
    """Raised when an image cannot be uploaded."""


def decode_data_uri(uri: str) -> Tuple[bytes, str]:
    """
    Decode a ``data:`` URI.

    Args:
        uri: data URI, base64 or percent-encoded

    Returns:
        Tuple of (content bytes, MIME type)

    Raises:
        ValueError: If the URI is malformed
    """
    header, sep, payload = uri.partition(',')
    if not header.startswith('data:') or not sep:
        raise ValueError("malformed data URI")
    params = header[len('data:'):].split(';')
    mimetype = params[0] or 'text/plain'
    if 'base64' in params[1:]:
        return base64.b64decode(payload), mimetype
    return unquote_to_bytes(payload), mimetype


class MediaUploader:
    """Uploads image files to Mobilizon and returns their media UUID."""

    def __init__(self, transport, endpoint: str):
        """
        Initialize the uploader.

        Args:
            transport: MobilizonTransport (adds auth and retries)
            endpoint: GraphQL endpoint URL
        """
        self.transport = transport
        self.endpoint = endpoint

    def upload(self, path: str) -> str:
        """
        Upload a local file or data URI.

        Args:
            path: Local file path or data URI

        Returns:
            Media UUID

        Raises:
            MediaUploadError: If the file cannot be read or the upload fails
        """
        try:
            content, name, mimetype = self._read(path)
        except (OSError, ValueError) as e:
            raise MediaUploadError(f"Cannot read image {path[:80]}: {e}")

        form = {
            'query': UPLOAD_MEDIA_MUTATION,
            'variables': json.dumps({'name': name, 'file': FILE_FIELD})
        }
        files = {FILE_FIELD: (name, content, mimetype)}

        logger.debug(f"Uploading media {name} ({len(content)} bytes)")
        response = self.transport.post(self.endpoint, data=form, files=files)
        try:
            data = parse_graphql_response(response)
        except GraphQLError as e:
            raise MediaUploadError(f"Error uploading image {name}: {e}")

        uuid = (data.get('uploadMedia') or {}).get('uuid')
        if not uuid:
            raise MediaUploadError(f"Image id not found in upload response. {name}")
        logger.debug(f"Uploaded media {name} as {uuid}")
        return uuid

    def _read(self, path: str) -> Tuple[bytes, str, str]:
        if path.startswith('data:'):
            content, mimetype = decode_data_uri(path)
            extension = mimetypes.guess_extension(mimetype) or ''
            return content, f"{FILE_FIELD}{extension}", mimetype

        with open(path, 'rb') as f:
            content = f.read()
        mimetype = mimetypes.guess_type(path)[0] or 'application/octet-stream'
        return content, os.path.basename(path), mimetype
