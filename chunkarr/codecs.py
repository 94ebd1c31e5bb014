"""Chunk codec: turns the raw row-major bytes of a chunk into the payload kept
in the store, and back.

Filters (e.g. byte-shuffle) run first, then the compressor. Both are numcodecs
codecs resolved through the numcodecs registry, so any registered codec id
(``lz4``, ``zstd``, ``zlib``, ``gzip``, ``bz2``, ``lzma``, ``blosc``, or one added
with :func:`register_codec`) can be recorded in array metadata and resolved
again when the array is reopened.
"""
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence

from numcodecs import get_codec, register_codec  # noqa: F401
from numcodecs.abc import Codec
from numcodecs.compat import ensure_bytes

from chunkarr.errors import BadCompressorError, DecodeError


def _resolve(codec: Any) -> Codec:
    if isinstance(codec, Codec):
        return codec
    if isinstance(codec, str):
        codec = {'id': codec}
    if isinstance(codec, Mapping):
        try:
            # get_codec pops the id, never hand it the caller's dict
            return get_codec(dict(codec))
        except (ValueError, TypeError, KeyError) as e:
            raise BadCompressorError(codec) from e
    raise BadCompressorError(codec)


def get_compressor(compressor: Any) -> Optional[Codec]:
    """Resolve a compressor given as a codec, a codec config, a registered codec
    id, None (no compression) or ``'default'``."""
    if compressor is None:
        return None
    if isinstance(compressor, str) and compressor == 'default':
        from chunkarr.config import config

        compressor = config.get('array.compressor')
        if compressor is None:
            return None
    return _resolve(compressor)


def normalize_compressor_config(compressor: Any) -> Optional[Dict[str, Any]]:
    codec = get_compressor(compressor)
    return None if codec is None else codec.get_config()


def normalize_filter_configs(filters: Optional[Sequence[Any]]) -> List[Dict[str, Any]]:
    if not filters:
        return []
    if isinstance(filters, (Codec, Mapping, str)):
        filters = [filters]
    return [_resolve(f).get_config() for f in filters]


class ChunkCodec:
    """Encodes and decodes chunk payloads with an optional list of filters and an
    optional compressor.

    Parameters
    ----------
    compressor : Codec, dict or str, optional
        Compressor applied after the filters.
    filters : sequence of Codecs or dicts, optional
        Filters applied in order on encode and in reverse order on decode.

    """

    def __init__(self, compressor=None, filters=None):
        self.compressor = get_compressor(compressor)
        self.filters = [_resolve(f) for f in filters or ()]

    @classmethod
    def from_params(cls, params: Optional[Mapping]) -> 'ChunkCodec':
        params = params or {}
        return cls(compressor=params.get('compressor'), filters=params.get('filters'))

    def __repr__(self):
        return f'{type(self).__name__}(compressor={self.compressor!r}, filters={self.filters!r})'

    def encode(self, raw) -> bytes:
        chunk = raw
        for f in self.filters:
            chunk = f.encode(chunk)
        if self.compressor is not None:
            chunk = self.compressor.encode(chunk)
        return ensure_bytes(chunk)

    def decode(self, cdata, expected_length: int, key: Optional[str] = None) -> bytes:
        try:
            chunk = cdata
            if self.compressor is not None:
                chunk = self.compressor.decode(chunk)
            for f in reversed(self.filters):
                chunk = f.decode(chunk)
            raw = ensure_bytes(chunk)
        except Exception as e:
            raise DecodeError(f'malformed chunk payload: {e}', key) from e
        if len(raw) != expected_length:
            raise DecodeError(
                f'decoded {len(raw)} bytes but expected {expected_length}', key)
        return raw


def encode(raw, params: Optional[Mapping] = None) -> bytes:
    """Encode `raw` with the filters and compressor named in `params`."""
    return ChunkCodec.from_params(params).encode(raw)


def decode(cdata, expected_length: int, params: Optional[Mapping] = None) -> bytes:
    """Decode `cdata` with the filters and compressor named in `params`, checking the
    decoded length against `expected_length`."""
    return ChunkCodec.from_params(params).decode(cdata, expected_length)
