import json

import numpy as np
import pytest

from chunkarr.errors import (BadCompressorError, CorruptMetadataError, InvalidShapeError,
                             MetadataError, NotResizableError)
from chunkarr.meta import (CHUNKARR_FORMAT, SUPPORTED_DTYPES, ArrayMetadata,
                           create_array_metadata, decode_dtype, decode_fill_value,
                           decode_group_metadata, encode_fill_value, encode_group_metadata,
                           normalize_dtype)


def test_array_document_layout():
    meta = ArrayMetadata(shape=(100, 3, 2160, 3840), chunks=(1, 3, 960, 960), dtype='u1',
                         compressor={'id': 'zlib', 'level': 1}, fill_value=None,
                         resizable=(0,))
    encoded = meta.encode()
    assert isinstance(encoded, bytes)
    assert {
        'chunkarr_format': CHUNKARR_FORMAT,
        'shape': [100, 3, 2160, 3840],
        'chunks': [1, 3, 960, 960],
        'dtype': '|u1',
        'compressor': {'id': 'zlib', 'level': 1},
        'fill_value': 0,
        'filters': None,
        'dimension_separator': '.',
        'resizable': [0],
    } == json.loads(encoded)

    decoded = ArrayMetadata.decode(encoded)
    assert meta == decoded
    assert 'zlib' == decoded.compressor_id
    assert {'level': 1} == decoded.compressor_params


def test_encode_decode_array_fill_values():

    for dtype, fill_value, expect in [
        ('<f8', np.nan, 'NaN'),
        ('<f4', np.inf, 'Infinity'),
        ('<f2', -np.inf, '-Infinity'),
        ('<f8', 1.5, 1.5),
        ('<i2', -3, -3),
        ('|b1', True, True),
        ('<c16', 1 + 2j, [1.0, 2.0]),
    ]:
        meta = ArrayMetadata(shape=(10,), chunks=(5,), dtype=np.dtype(dtype),
                             fill_value=fill_value)
        doc = json.loads(meta.encode())
        assert expect == doc['fill_value']
        decoded = ArrayMetadata.decode(meta.encode())
        if dtype.endswith('f8') and np.isnan(fill_value):
            assert np.isnan(decoded.fill_value)
        else:
            assert fill_value == decoded.fill_value


def test_encode_decode_array_shuffle_and_separator():
    meta = create_array_metadata((100, 100), chunks=(10, 10), dtype='u2',
                                 compressor={'id': 'zstd', 'level': 3}, shuffle=True,
                                 dimension_separator='/', resizable=[0])
    assert meta.filters == ({'id': 'shuffle', 'elementsize': 2},)
    assert meta.dimension_separator == '/'
    assert meta.resizable == (0,)

    decoded = ArrayMetadata.decode(meta.encode())
    assert decoded == meta
    assert decoded.codec_params == {'compressor': meta.compressor, 'filters': meta.filters}


def test_create_array_metadata_defaults():
    meta = create_array_metadata(1000, chunks=100)
    assert meta.shape == (1000,)
    assert meta.chunks == (100,)
    assert meta.dtype == np.dtype('<f8')
    assert meta.compressor_id == 'lz4'
    assert meta.filters is None
    assert meta.fill_value == 0
    assert meta.resizable == (0,)


def test_create_array_metadata_invalid():
    with pytest.raises(InvalidShapeError):
        create_array_metadata((10, 10), chunks=(5,))
    with pytest.raises(InvalidShapeError):
        create_array_metadata((10, 0), chunks=(5, 5))
    with pytest.raises(InvalidShapeError):
        create_array_metadata((10, 10), chunks=(5, -2))
    with pytest.raises(BadCompressorError):
        create_array_metadata(10, chunks=5, compressor='no-such-codec')
    with pytest.raises(ValueError):
        create_array_metadata(10, chunks=5, dtype=object)
    with pytest.raises(ValueError):
        create_array_metadata(10, chunks=5, dtype='i4,f8')
    with pytest.raises(ValueError):
        create_array_metadata(10, chunks=5, dtype='i4', fill_value='foo')


def test_decode_array_corrupt():

    # unparsable
    with pytest.raises(CorruptMetadataError):
        ArrayMetadata.decode(b'{"shape": [100')

    # not a JSON object
    with pytest.raises(CorruptMetadataError):
        ArrayMetadata.decode(b'[1, 2, 3]')

    good = json.loads(ArrayMetadata(shape=(100,), chunks=(10,), dtype='i4').encode())

    # unsupported format
    doc = dict(good, chunkarr_format=CHUNKARR_FORMAT + 1)
    with pytest.raises(CorruptMetadataError):
        ArrayMetadata.decode(json.dumps(doc))

    # missing field
    doc = dict(good)
    del doc['chunks']
    with pytest.raises(CorruptMetadataError):
        ArrayMetadata.decode(json.dumps(doc))

    # invariant violated
    doc = dict(good, shape=[100, 100])
    with pytest.raises(CorruptMetadataError) as excinfo:
        ArrayMetadata.decode(json.dumps(doc), path='foo/bar')
    assert excinfo.value.path == 'foo/bar'

    # unsupported dtype
    doc = dict(good, dtype='|O')
    with pytest.raises(CorruptMetadataError):
        ArrayMetadata.decode(json.dumps(doc))

    # codecs that are not registered
    doc = dict(good, compressor={'id': 'no-such-codec'})
    with pytest.raises(CorruptMetadataError):
        ArrayMetadata.decode(json.dumps(doc))
    doc = dict(good, filters=[{'id': 'no-such-filter'}])
    with pytest.raises(CorruptMetadataError):
        ArrayMetadata.decode(json.dumps(doc))

    # corrupt metadata is a metadata error
    assert issubclass(CorruptMetadataError, MetadataError)


def test_metadata_is_immutable():
    meta = ArrayMetadata(shape=(100,), chunks=(10,), dtype='i4')
    with pytest.raises(AttributeError):
        meta.shape = (200,)


def test_grid_properties():
    meta = ArrayMetadata(shape=(100, 3, 2160, 3840), chunks=(1, 3, 960, 960), dtype='u1')
    assert meta.ndim == 4
    assert meta.cdata_shape == (100, 1, 3, 4)
    assert meta.nchunks == 1200
    assert meta.chunk_nbytes == 3 * 960 * 960
    assert meta.chunk_extent((0, 0, 0, 0)) == (1, 3, 960, 960)
    # edge chunks are truncated at the array boundary
    assert meta.chunk_extent((99, 0, 2, 3)) == (1, 3, 240, 960)


def test_resize():
    meta = ArrayMetadata(shape=(100, 10), chunks=(10, 10), dtype='i4', resizable=[0])

    grown = meta.resize((150, 10))
    assert grown.shape == (150, 10)
    assert meta.shape == (100, 10)
    assert grown.chunks == meta.chunks
    assert grown.resizable == (0,)

    with pytest.raises(NotResizableError):
        meta.resize((50, 10))
    with pytest.raises(NotResizableError):
        meta.resize((100, 20))
    with pytest.raises(ValueError):
        meta.resize((100,))


def test_resizable_out_of_range():
    with pytest.raises(ValueError):
        ArrayMetadata(shape=(100,), chunks=(10,), dtype='i4', resizable=[1])


def test_normalize_dtype():
    for name, dtype in SUPPORTED_DTYPES.items():
        assert normalize_dtype(name) == dtype
        assert dtype.str[0] in '<|'
        assert decode_dtype(dtype.str) == dtype
    # stored little-endian
    assert normalize_dtype('>i4') == np.dtype('<i4')
    assert normalize_dtype(None) == np.dtype('<f8')
    with pytest.raises(ValueError):
        normalize_dtype('U10')
    with pytest.raises(ValueError):
        normalize_dtype('M8[ns]')
    with pytest.raises(ValueError):
        decode_dtype('>i4')


def test_fill_value_codec():
    f8 = np.dtype('<f8')
    assert encode_fill_value(np.float64(1.5), f8) == 1.5
    assert np.isnan(decode_fill_value('NaN', f8))
    assert decode_fill_value(None, np.dtype('<i4')) == 0


def test_encode_decode_group():
    b = encode_group_metadata()
    assert {'chunkarr_format': CHUNKARR_FORMAT} == json.loads(b)
    assert decode_group_metadata(b) == {'chunkarr_format': CHUNKARR_FORMAT}
    with pytest.raises(MetadataError):
        decode_group_metadata(b'{"chunkarr_format": 99}')
