import dataclasses
import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import numpy as np

from chunkarr.errors import CorruptMetadataError, MetadataError, NotResizableError
from chunkarr.util import (json_dumps, json_loads, normalize_chunks, normalize_dimension_separator,
                           normalize_fill_value, normalize_shape)


CHUNKARR_FORMAT = 1

array_meta_key = '.carray'
group_meta_key = '.cgroup'
attrs_key = '.cattrs'

# closed set of element types, always stored little-endian
SUPPORTED_DTYPES: Dict[str, np.dtype] = {
    name: np.dtype(name).newbyteorder('<') for name in (
        'bool',
        'int8', 'int16', 'int32', 'int64',
        'uint8', 'uint16', 'uint32', 'uint64',
        'float16', 'float32', 'float64',
        'complex64', 'complex128',
    )
}
_supported_dtype_strs = {d.str: d for d in SUPPORTED_DTYPES.values()}


def normalize_dtype(dtype: Any) -> np.dtype:
    """Resolve `dtype` to one of the supported little-endian element types."""
    if dtype is None:
        dtype = 'float64'
    try:
        dtype = np.dtype(dtype)
    except TypeError as e:
        raise ValueError(f'unsupported dtype {dtype!r}') from e
    if dtype.fields is not None or dtype.subdtype is not None:
        raise ValueError(f'unsupported dtype {dtype!r}; structured dtypes are not supported')
    name = dtype.name
    if name not in SUPPORTED_DTYPES:
        raise ValueError(
            f'unsupported dtype {dtype!r}; expected one of {", ".join(SUPPORTED_DTYPES)}')
    return SUPPORTED_DTYPES[name]


def decode_dtype(d: str) -> np.dtype:
    try:
        return _supported_dtype_strs[d]
    except (KeyError, TypeError):
        raise ValueError(f'unsupported dtype {d!r}') from None


def encode_fill_value(v: Any, dtype: np.dtype) -> Any:
    if dtype.kind == 'f':
        if np.isnan(v):
            return 'NaN'
        elif np.isposinf(v):
            return 'Infinity'
        elif np.isneginf(v):
            return '-Infinity'
        else:
            return float(v)
    elif dtype.kind in 'ui':
        return int(v)
    elif dtype.kind == 'b':
        return bool(v)
    elif dtype.kind == 'c':
        part = np.dtype('f8')
        return [encode_fill_value(v.real, part), encode_fill_value(v.imag, part)]
    raise ValueError(f'cannot encode fill value for dtype {dtype!r}')


def decode_fill_value(v: Any, dtype: np.dtype) -> Any:
    if v is None:
        return np.zeros((), dtype=dtype)[()]
    if dtype.kind == 'f':
        if v == 'NaN':
            return dtype.type(np.nan)
        elif v == 'Infinity':
            return dtype.type(np.inf)
        elif v == '-Infinity':
            return dtype.type(-np.inf)
        else:
            return np.array(v, dtype=dtype)[()]
    elif dtype.kind == 'c':
        part = np.dtype('f8')
        real, imag = v
        v = decode_fill_value(real, part) + 1j * decode_fill_value(imag, part)
        return np.array(v, dtype=dtype)[()]
    else:
        return np.array(v, dtype=dtype)[()]


@dataclass(frozen=True)
class ArrayMetadata:
    """Immutable description of a chunked array: its logical shape, the shape of
    each chunk, the element type, how chunks are encoded and the value used for
    positions that have never been written."""

    shape: Tuple[int, ...]
    chunks: Tuple[int, ...]
    dtype: np.dtype
    compressor: Optional[Dict[str, Any]] = None
    filters: Optional[Tuple[Dict[str, Any], ...]] = None
    fill_value: Any = 0
    dimension_separator: str = '.'
    resizable: Optional[Tuple[int, ...]] = None

    def __post_init__(self):
        # frozen, so normalize through object.__setattr__
        shape = normalize_shape(self.shape)
        dtype = normalize_dtype(self.dtype)
        chunks = normalize_chunks(self.chunks, shape, dtype.itemsize)
        if self.resizable is None:
            resizable = tuple(range(len(shape)))
        else:
            resizable = tuple(sorted(set(int(a) for a in self.resizable)))
            if any(a < 0 or a >= len(shape) for a in resizable):
                raise ValueError(f'resizable axes {resizable!r} out of range for shape {shape!r}')
        filters = tuple(dict(f) for f in self.filters) if self.filters else None
        compressor = dict(self.compressor) if self.compressor else None
        if compressor is not None and 'id' not in compressor:
            raise ValueError(f'compressor config {compressor!r} has no id')
        object.__setattr__(self, 'shape', shape)
        object.__setattr__(self, 'chunks', chunks)
        object.__setattr__(self, 'dtype', dtype)
        object.__setattr__(self, 'compressor', compressor)
        object.__setattr__(self, 'filters', filters)
        object.__setattr__(self, 'fill_value', normalize_fill_value(self.fill_value, dtype))
        object.__setattr__(self, 'dimension_separator',
                           normalize_dimension_separator(self.dimension_separator))
        object.__setattr__(self, 'resizable', resizable)

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def compressor_id(self) -> Optional[str]:
        return self.compressor['id'] if self.compressor else None

    @property
    def compressor_params(self) -> Dict[str, Any]:
        if not self.compressor:
            return {}
        return {k: v for k, v in self.compressor.items() if k != 'id'}

    @property
    def cdata_shape(self) -> Tuple[int, ...]:
        return tuple(math.ceil(s / c) for s, c in zip(self.shape, self.chunks))

    @property
    def nchunks(self) -> int:
        return math.prod(self.cdata_shape)

    @property
    def chunk_nbytes(self) -> int:
        """Length in bytes of a decoded chunk, edge chunks included."""
        return math.prod(self.chunks) * self.dtype.itemsize

    @property
    def codec_params(self) -> Dict[str, Any]:
        return {'compressor': self.compressor, 'filters': self.filters}

    def chunk_extent(self, chunk_coords: Tuple[int, ...]) -> Tuple[int, ...]:
        """Shape of the in-bounds part of the chunk at `chunk_coords`."""
        return tuple(
            min(c, s - i * c) for i, c, s in zip(chunk_coords, self.chunks, self.shape)
        )

    def resize(self, new_shape: Tuple[int, ...]) -> 'ArrayMetadata':
        if len(new_shape) != len(self.shape):
            raise ValueError('new shape must have same number of dimensions')
        for axis, (old, new) in enumerate(zip(self.shape, new_shape)):
            if old == new:
                continue
            if axis not in self.resizable:
                raise NotResizableError(axis, old, new, 'dimension is not resizable')
            if new < old:
                raise NotResizableError(axis, old, new, 'shrinking is not supported')
        return dataclasses.replace(self, shape=tuple(new_shape))

    def to_dict(self) -> Dict[str, Any]:
        return dict(
            chunkarr_format=CHUNKARR_FORMAT,
            shape=list(self.shape),
            chunks=list(self.chunks),
            dtype=self.dtype.str,
            compressor=self.compressor,
            filters=list(self.filters) if self.filters else None,
            fill_value=encode_fill_value(self.fill_value, self.dtype),
            dimension_separator=self.dimension_separator,
            resizable=list(self.resizable),
        )

    def encode(self) -> bytes:
        return json_dumps(self.to_dict())

    @classmethod
    def decode(cls, s: Union[Mapping, bytes, str], path: str = '') -> 'ArrayMetadata':
        try:
            meta = s if isinstance(s, Mapping) else json_loads(s)
        except Exception as e:
            raise CorruptMetadataError(path, f'unparsable document: {e}') from e
        if not isinstance(meta, Mapping):
            raise CorruptMetadataError(path, 'document is not a JSON object')

        fmt = meta.get('chunkarr_format', None)
        if fmt != CHUNKARR_FORMAT:
            raise CorruptMetadataError(path, f'unsupported chunkarr format: {fmt!r}')

        from chunkarr.codecs import ChunkCodec

        try:
            dtype = decode_dtype(meta['dtype'])
            decoded = cls(
                shape=tuple(meta['shape']),
                chunks=tuple(meta['chunks']),
                dtype=dtype,
                compressor=meta['compressor'],
                filters=meta.get('filters'),
                fill_value=decode_fill_value(meta['fill_value'], dtype),
                dimension_separator=meta.get('dimension_separator', '.'),
                resizable=meta.get('resizable'),
            )
            # every codec named in the document must be registered
            ChunkCodec(compressor=decoded.compressor, filters=decoded.filters)
        except Exception as e:
            raise CorruptMetadataError(path, f'{type(e).__name__}: {e}') from e
        return decoded


def create_array_metadata(shape, chunks=True, dtype=None, compressor='default', fill_value=0,
                          filters=None, shuffle=None, dimension_separator=None,
                          resizable=None) -> ArrayMetadata:
    """Build and validate the metadata for a new array.

    Parameters
    ----------
    shape : int or tuple of ints
        Array shape.
    chunks : int or tuple of ints, optional
        Chunk shape. If True, will be guessed from `shape` and `dtype`. If
        False, will be set to `shape`, i.e., single chunk for the whole array.
        Dimensions given as None or -1 span the whole axis.
    dtype : string or dtype, optional
        One of the supported element types.
    compressor : Codec, dict or str, optional
        Primary compressor, given as a numcodecs codec, a codec config or a
        registered codec id. ``'default'`` takes the compressor from
        ``config['array.compressor']`` and None disables compression.
    fill_value : object
        Value for positions that have never been written.
    filters : sequence of Codecs or dicts, optional
        Filters applied before compression.
    shuffle : bool, optional
        Add a byte-shuffle filter ahead of the compressor. Defaults to
        ``config['array.shuffle']``.
    dimension_separator : {'.', '/'}, optional
        Separator placed between the chunk coordinates in chunk keys.
    resizable : sequence of ints, optional
        Axes along which the array may grow. Defaults to every axis.

    """
    from chunkarr.codecs import normalize_compressor_config, normalize_filter_configs
    from chunkarr.config import config

    shape = normalize_shape(shape)
    dtype = normalize_dtype(dtype)
    chunks = normalize_chunks(chunks, shape, dtype.itemsize)

    compressor = normalize_compressor_config(compressor)
    filters = normalize_filter_configs(filters)
    if shuffle is None:
        shuffle = config.get('array.shuffle')
    if shuffle and not any(f['id'] == 'shuffle' for f in filters):
        filters.append({'id': 'shuffle', 'elementsize': dtype.itemsize})

    return ArrayMetadata(
        shape=shape,
        chunks=chunks,
        dtype=dtype,
        compressor=compressor,
        filters=tuple(filters) or None,
        fill_value=fill_value,
        dimension_separator=normalize_dimension_separator(dimension_separator),
        resizable=resizable,
    )


def encode_group_metadata(meta=None) -> bytes:
    return json_dumps(dict(chunkarr_format=CHUNKARR_FORMAT))


def decode_group_metadata(s: Union[Mapping, bytes, str]) -> Dict[str, Any]:
    meta = s if isinstance(s, Mapping) else json_loads(s)
    fmt = meta.get('chunkarr_format', None)
    if fmt != CHUNKARR_FORMAT:
        raise MetadataError(f'unsupported chunkarr format: {fmt!r}')
    return dict(chunkarr_format=fmt)
