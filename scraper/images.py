"""Image discovery, download and thumbnailing for events."""
import io
import logging
import mimetypes
import tempfile
from typing import List, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup
from PIL import Image

from processor.models import SourceEvent

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_URL = "https://mobilisons.ch/img/mobilizon_default_card.png"
MAX_IMAGE_SIZE = 1024 * 800
IMAGE_RESIZE_WIDTH = 600

# claim to be a browser, some venues block scripts
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/109.0.0.0 Safari/537.36"
)

THUMBNAIL_FORMATS = {
    'image/jpeg': 'JPEG',
    'image/png': 'PNG',
    'image/avif': 'AVIF',
}


class ImageError(Exception):
    """Raised when no image could be downloaded for an event."""


def thumbnail(content: bytes, mimetype: str, width: int = IMAGE_RESIZE_WIDTH) -> bytes:
    """
    Resize an image to the given width and encode it as JPEG.

    The height is calculated to preserve the aspect ratio.

    Args:
        content: Encoded image bytes
        mimetype: image/jpeg, image/png or image/avif
        width: Target width in pixels

    Returns:
        JPEG bytes

    Raises:
        ValueError: If the MIME type is not supported or decoding fails
    """
    image_format = THUMBNAIL_FORMATS.get(mimetype)
    if image_format is None:
        raise ValueError(f"Unknown MIME Type {mimetype}")

    try:
        src = Image.open(io.BytesIO(content), formats=[image_format])
        src.load()
    except (OSError, Image.DecompressionBombError) as e:
        raise ValueError(f"Cannot decode {mimetype} image: {e}")

    logger.debug(f"Resizing image", extra={'mimetype': mimetype, 'size': src.size})
    height = round(width * src.height / src.width)
    dst = src.convert('RGB').resize((width, height), Image.Resampling.NEAREST)

    out = io.BytesIO()
    dst.save(out, format='JPEG')
    return out.getvalue()


class ImageAcquirer:
    """Finds and downloads a picture for each event."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
        default_image_url: str = DEFAULT_IMAGE_URL
    ):
        """
        Initialize the image acquirer.

        Args:
            session: requests session (default: new session)
            timeout: HTTP request timeout in seconds
            default_image_url: Image used when an event has none
        """
        self.session = session or requests.Session()
        self.timeout = timeout
        self.default_image_url = default_image_url

    def acquire(self, event: SourceEvent) -> str:
        """
        Produce a local image for an event.

        Args:
            event: Source event

        Returns:
            Local file path, or a data URI which is passed through

        Raises:
            ImageError: If neither the chosen nor the default image downloads
        """
        url = self.choose_image_url(event)
        try:
            return self.download(url)
        except (requests.RequestException, OSError, ValueError) as e:
            logger.error(f"Media download error for {url}: {e}")
            if url == self.default_image_url:
                raise ImageError(f"Cannot download default image: {e}")

        try:
            return self.download(self.default_image_url)
        except (requests.RequestException, OSError, ValueError) as e:
            raise ImageError(f"Cannot download default image: {e}")

    def choose_image_url(self, event: SourceEvent) -> str:
        """
        Pick the image URL for an event.

        The event's own image wins, then the page's OpenGraph image, then
        the largest image on the page, then the default image.
        """
        image_url = event.image_url
        if image_url and image_url != event.source_url and not image_url.endswith('/'):
            if image_url.startswith('data:'):
                return image_url
            return urljoin(event.url, image_url)

        image_url = self.fetch_og_image_url(event.url)
        if image_url.startswith('http'):
            return image_url

        image_url = self.guess_event_image(event.url)
        if image_url.startswith('http'):
            return image_url

        logger.info(f"No image found for {event.url}")
        return self.default_image_url

    def fetch_og_image_url(self, url: str) -> str:
        """
        Return the first OpenGraph image of a page if it is reachable.

        See https://ogp.me/

        Args:
            url: Event page URL

        Returns:
            Absolute image URL or ""
        """
        logger.debug(f"Fetching opengraph image url for {url}")
        soup = self._fetch_page(url)
        if soup is None:
            return ''

        og = soup.find('meta', property='og:image')
        if not og or not og.get('content', '').strip():
            logger.debug("No opengraph image found")
            return ''

        image_url = urljoin(url, og['content'].strip())
        if image_url in url:
            logger.debug("Opengraph image URL is a substring of the event URL")
            return ''

        # check that it works first
        try:
            response = self.session.head(image_url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            logger.error(f"Opengraph image HEAD failed for {image_url}: {e}")
            return ''
        if response.status_code != 200:
            logger.error(f"Opengraph image HEAD returned {response.status_code} for {image_url}")
            return ''

        logger.debug(f"Returning first opengraph image URL {image_url}")
        return image_url

    def guess_event_image(self, url: str) -> str:
        """
        Guess an image for an event from the <img> tags on its page.

        The best image is taken to be the largest one under the upload
        size limit. Far from ideal, but it's a fallback.

        Args:
            url: Event page URL

        Returns:
            Image URL or ""
        """
        logger.debug(f"Attempting to guess an image URL for {url}")
        soup = self._fetch_page(url)
        if soup is None:
            return ''

        best = ''
        best_size = 0
        for src in self._image_sources(soup, url):
            try:
                response = self.session.head(src, timeout=self.timeout, allow_redirects=True)
            except requests.RequestException as e:
                logger.error(f"Could not perform HEAD method for image {src}: {e}")
                continue
            if response.status_code != 200:
                logger.debug(f"Image HEAD returned {response.status_code} for {src}")
                continue
            try:
                size = int(response.headers.get('Content-Length', 0))
            except ValueError:
                size = 0
            if best_size < size < MAX_IMAGE_SIZE:
                best = src
                best_size = size
            logger.debug(
                f"Choosing image by size",
                extra={'src': src, 'size': size, 'best_size': best_size}
            )
        return best

    def download(self, url: str) -> str:
        """
        Download an image to a temporary file, thumbnailing large or AVIF images.

        Args:
            url: Image URL or data URI

        Returns:
            Local file path, or the data URI unchanged

        Raises:
            requests.RequestException: On network errors
            ValueError: On non-200 responses or undecodable images
        """
        if url.startswith('data:'):
            return url

        response = self.session.get(url, timeout=self.timeout)
        if response.status_code != 200:
            raise ValueError(f"Received response code {response.status_code} for {url}")

        content = response.content
        mimetype = response.headers.get('Content-Type', '').split(';')[0].strip().lower()
        if not mimetype:
            mimetype = mimetypes.guess_type(url)[0] or ''
        try:
            length = int(response.headers.get('Content-Length', len(content)))
        except ValueError:
            length = len(content)

        if length > MAX_IMAGE_SIZE or mimetype == 'image/avif' or url.lower().endswith('.avif'):
            if url.lower().endswith('.avif') and mimetype not in THUMBNAIL_FORMATS:
                mimetype = 'image/avif'
            content = thumbnail(content, mimetype)
            suffix = '.jpg'
        else:
            suffix = mimetypes.guess_extension(mimetype) or ''

        with tempfile.NamedTemporaryFile(prefix='cc2mob.', suffix=suffix, delete=False) as f:
            f.write(content)
        logger.debug(f"Downloaded {url} to {f.name}")
        return f.name

    def _fetch_page(self, url: str) -> Optional[BeautifulSoup]:
        try:
            response = self.session.get(
                url,
                headers={'User-Agent': BROWSER_USER_AGENT},
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Could not fetch event page {url}: {e}")
            return None
        return BeautifulSoup(response.text, 'html.parser')

    def _image_sources(self, soup: BeautifulSoup, url: str) -> List[str]:
        sources = []
        for img in soup.find_all('img', src=True):
            src = img['src'].strip()
            # inline images
            if src.startswith('data:'):
                continue
            # root-relative paths usually point at site furniture
            if src.startswith('/') and not src.startswith('//'):
                continue
            if src.lower().endswith('.svg'):
                continue
            sources.append(urljoin(url, src))
        return sources
