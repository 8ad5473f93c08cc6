# ========================
# src/cur_ingest/ingestion.py
# ========================

"""
Data Ingestion Module

Reads a CUR byte source in bounded pulls and decodes it to text without
ever holding the whole file in memory.
"""

import codecs
import logging
import os
from typing import Any, Iterator, Optional

from .errors import SourceReadError

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_CHUNK_BYTES = 10 * 1024 * 1024
DEFAULT_STREAM_CHUNK_BYTES = 1024 * 1024


class ChunkReader:
    """
    Sequential chunk reader over one of several byte sources.

    Supported sources:
        - bytes / bytearray / memoryview (sliced in buffer_chunk_size pulls)
        - a filesystem path, str or os.PathLike (read in stream_chunk_size pulls)
        - a binary file-like object with read(n)
        - any iterable of bytes chunks, e.g. a streamed blob body
    """

    def __init__(self, source: Any, total_size: Optional[int] = None,
                 buffer_chunk_size: int = DEFAULT_BUFFER_CHUNK_BYTES,
                 stream_chunk_size: int = DEFAULT_STREAM_CHUNK_BYTES):
        """
        Initialize the chunk reader.

        Args:
            source: Byte source (see class docstring)
            total_size (int): Total size in bytes if the caller knows it
            buffer_chunk_size (int): Pull size for in-memory buffers
            stream_chunk_size (int): Pull size for files and file-likes

        Raises:
            TypeError: If the source type is not supported
        """
        self.source = source
        self.buffer_chunk_size = buffer_chunk_size
        self.stream_chunk_size = stream_chunk_size
        self.bytes_read = 0
        self.chunks_read = 0
        self._kind = self._classify(source)
        self.total_size = total_size if total_size is not None else self._detect_size()
        logger.info(f"Initialized ChunkReader for {self._kind} source, total size: {self.total_size}")

    @staticmethod
    def _classify(source: Any) -> str:
        if isinstance(source, (bytes, bytearray, memoryview)):
            return 'buffer'
        if isinstance(source, (str, os.PathLike)):
            return 'path'
        if hasattr(source, 'read'):
            return 'file'
        if hasattr(source, '__iter__'):
            return 'iterable'
        raise TypeError(f"Unsupported CUR source type: {type(source).__name__}")

    def _detect_size(self) -> Optional[int]:
        try:
            if self._kind == 'buffer':
                return memoryview(self.source).nbytes
            if self._kind == 'path':
                return os.path.getsize(self.source)
            if self._kind == 'file':
                return os.fstat(self.source.fileno()).st_size
        except (OSError, AttributeError, ValueError):
            return None
        return None

    def chunks(self) -> Iterator[str]:
        """
        A generator that yields decoded text chunks in source order.

        Yields:
            str: Decoded text; multi-byte characters split across pulls are
            carried over to the next chunk.

        Raises:
            SourceReadError: If the source cannot be read or is not valid UTF-8
        """
        decoder = codecs.getincrementaldecoder('utf-8')()
        try:
            for raw in self._raw_chunks():
                if isinstance(raw, str):
                    raise SourceReadError("CUR source produced text instead of bytes; open it in binary mode")
                self.bytes_read += len(raw)
                self.chunks_read += 1
                text = decoder.decode(raw)
                if text:
                    yield text
            tail = decoder.decode(b'', final=True)
            if tail:
                yield tail
        except UnicodeDecodeError as e:
            logger.error(f"CUR source is not valid UTF-8 near byte {self.bytes_read:,}: {e}")
            raise SourceReadError(f"CUR source is not valid UTF-8: {e}") from e
        except OSError as e:
            logger.error(f"Error reading CUR source: {e}")
            raise SourceReadError(f"Error reading CUR source: {e}") from e

        logger.info(f"Finished reading {self.bytes_read:,} bytes in {self.chunks_read:,} chunks")

    def _raw_chunks(self) -> Iterator[bytes]:
        if self._kind == 'buffer':
            view = memoryview(self.source).cast('B')
            for start in range(0, len(view), self.buffer_chunk_size):
                yield bytes(view[start:start + self.buffer_chunk_size])
        elif self._kind == 'path':
            with open(self.source, 'rb') as f:
                yield from self._read_file(f)
        elif self._kind == 'file':
            yield from self._read_file(self.source)
        else:
            for raw in self.source:
                if raw:
                    yield raw

    def _read_file(self, f) -> Iterator[bytes]:
        while True:
            raw = f.read(self.stream_chunk_size)
            if not raw:
                return
            yield raw
