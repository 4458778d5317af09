"""Fetcher contract and the yt-dlp backed implementation."""

import abc
import http.client
import urllib.error
import urllib.request
from typing import BinaryIO, Dict, Iterator, List, Optional, Sequence

import yt_dlp
from yt_dlp.extractor.youtube import YoutubeIE
from yt_dlp.utils import DownloadError, ExtractorError

from .errors import ResolutionError, TransferError
from .logger import DownloadLogger
from .models import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_EXTENSION,
    DEFAULT_PREFERRED_FORMAT,
    DEFAULT_PREFERRED_HEIGHT,
    DEFAULT_SOCKET_TIMEOUT,
    Metadata,
    Variant,
)

DIRECT_PROTOCOLS = frozenset({"http", "https"})


class ByteStream:
    """Iterable of byte chunks read from an open binary source.

    ``downloaded`` and ``total`` are kept current while iterating, so every
    chunk is a progress event ``(len(chunk), downloaded, total)``. Iteration
    ending normally is the finish signal; failures raise ``TransferError``.
    """

    def __init__(
        self,
        source: BinaryIO,
        total: Optional[int] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._source = source
        self.total = total
        self.chunk_size = chunk_size
        self.downloaded = 0

    def __iter__(self) -> Iterator[bytes]:
        while True:
            try:
                chunk = self._source.read(self.chunk_size)
            except (OSError, ValueError, http.client.HTTPException) as exc:
                raise TransferError(f"Stream failed after {self.downloaded} bytes: {exc}") from exc
            if not chunk:
                break
            self.downloaded += len(chunk)
            yield chunk

        if self.total and self.downloaded < self.total:
            raise TransferError(
                f"Stream ended after {self.downloaded} of {self.total} bytes"
            )

    def close(self) -> None:
        self._source.close()

    def __enter__(self) -> "ByteStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False


class Fetcher(abc.ABC):
    """Resolves identifiers to metadata and byte streams."""

    @abc.abstractmethod
    def validate(self, raw: str) -> bool:
        """Whether *raw* is an identifier this fetcher can handle."""

    @abc.abstractmethod
    def resolve(self, identifier: str) -> Metadata:
        """Fetch title and available variants; raise ``ResolutionError``."""

    @abc.abstractmethod
    def select_variant(self, variants: Sequence[Variant]) -> Optional[Variant]:
        """Pick the variant to download, or ``None`` when nothing fits."""

    @abc.abstractmethod
    def open_stream(self, identifier: str, variant: Variant) -> ByteStream:
        """Open the byte stream for *variant*; raise ``TransferError``."""


def _variant_from_format(entry: dict) -> Optional[Variant]:
    format_id = entry.get("format_id")
    if format_id is None:
        return None

    height = entry.get("height")
    try:
        height = int(height) if height is not None else None
    except (TypeError, ValueError):
        height = None

    vcodec = entry.get("vcodec")
    acodec = entry.get("acodec")
    headers = entry.get("http_headers")

    return Variant(
        format_id=str(format_id),
        ext=entry.get("ext"),
        height=height,
        has_video=bool(vcodec) and vcodec != "none",
        has_audio=bool(acodec) and acodec != "none",
        url=entry.get("url"),
        http_headers=dict(headers) if isinstance(headers, dict) else {},
        filesize=entry.get("filesize") or entry.get("filesize_approx"),
        protocol=entry.get("protocol"),
    )


class YtDlpFetcher(Fetcher):
    """Fetcher that resolves YouTube URLs with yt-dlp and streams over HTTP."""

    def __init__(
        self,
        preferred_format: Optional[str] = DEFAULT_PREFERRED_FORMAT,
        preferred_height: Optional[int] = DEFAULT_PREFERRED_HEIGHT,
        extension: str = DEFAULT_EXTENSION,
        socket_timeout: float = DEFAULT_SOCKET_TIMEOUT,
        cookies_from_browser: Optional[str] = None,
        proxy: Optional[str] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.preferred_format = preferred_format
        self.preferred_height = preferred_height
        self.extension = extension
        self.socket_timeout = socket_timeout
        self.cookies_from_browser = cookies_from_browser
        self.proxy = proxy
        self.chunk_size = chunk_size

    def validate(self, raw: str) -> bool:
        return bool(raw) and YoutubeIE.suitable(raw)

    def build_ydl_options(self, logger: DownloadLogger) -> Dict[str, object]:
        ydl_opts: Dict[str, object] = {
            "skip_download": True,
            "quiet": True,
            "no_warnings": False,
            "noplaylist": True,
            "logger": logger,
            "socket_timeout": self.socket_timeout,
        }
        if self.cookies_from_browser:
            ydl_opts["cookiesfrombrowser"] = (self.cookies_from_browser,)
        if self.proxy:
            ydl_opts["proxy"] = self.proxy
        return ydl_opts

    def resolve(self, identifier: str) -> Metadata:
        logger = DownloadLogger(identifier)
        try:
            with yt_dlp.YoutubeDL(self.build_ydl_options(logger)) as ydl:
                info = ydl.extract_info(identifier, download=False)
        except (DownloadError, ExtractorError) as exc:
            raise ResolutionError(f"Failed to resolve {identifier}: {exc}") from exc

        if not isinstance(info, dict):
            reason = logger.last_error or "no metadata returned"
            raise ResolutionError(f"Failed to resolve {identifier}: {reason}")

        variants: List[Variant] = []
        for entry in info.get("formats") or []:
            if not isinstance(entry, dict):
                continue
            variant = _variant_from_format(entry)
            if variant is not None:
                variants.append(variant)

        title = info.get("title")
        return Metadata(
            identifier=identifier,
            title=title if isinstance(title, str) else "",
            variants=variants,
        )

    def select_variant(self, variants: Sequence[Variant]) -> Optional[Variant]:
        direct = [
            variant
            for variant in variants
            if variant.url and (variant.protocol or "https") in DIRECT_PROTOCOLS
        ]

        if self.preferred_format:
            for variant in direct:
                if variant.format_id == self.preferred_format:
                    return variant

        muxed = [
            variant
            for variant in direct
            if variant.has_video
            and variant.has_audio
            and variant.ext == self.extension
            and (self.preferred_height is None or variant.height == self.preferred_height)
        ]
        if not muxed:
            return None
        return max(muxed, key=lambda v: (v.height or 0, v.filesize or 0))

    def _open(self, request: urllib.request.Request):
        if self.proxy:
            opener = urllib.request.build_opener(
                urllib.request.ProxyHandler({"http": self.proxy, "https": self.proxy})
            )
            return opener.open(request, timeout=self.socket_timeout)
        return urllib.request.urlopen(request, timeout=self.socket_timeout)

    def open_stream(self, identifier: str, variant: Variant) -> ByteStream:
        if not variant.url:
            raise TransferError(f"Variant {variant.format_id} of {identifier} has no URL")

        request = urllib.request.Request(variant.url, headers=dict(variant.http_headers))
        try:
            response = self._open(request)
        except (urllib.error.URLError, OSError, http.client.HTTPException) as exc:
            raise TransferError(
                f"Failed to open stream for {identifier} (format {variant.format_id}): {exc}"
            ) from exc

        total: Optional[int] = None
        length = response.headers.get("Content-Length") if response.headers else None
        if length and str(length).isdigit():
            total = int(length)
        elif variant.filesize:
            total = int(variant.filesize)

        return ByteStream(response, total=total, chunk_size=self.chunk_size)
