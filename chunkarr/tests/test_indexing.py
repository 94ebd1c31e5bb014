import numpy as np
import pytest

from chunkarr.errors import BoundsCheckError, NegativeStepError
from chunkarr.indexing import (BasicIndexer, normalize_integer_selection, normalize_slice_spec,
                               parse_selection, replace_ellipsis)
from chunkarr.meta import ArrayMetadata


def _meta(shape, chunks):
    return ArrayMetadata(shape=shape, chunks=chunks, dtype='u1')


@pytest.mark.parametrize('index, expected', [(1, 1), (-1, 99), (np.int64(5), 5), (-100, 0)])
def test_normalize_integer_selection(index, expected):
    assert expected == normalize_integer_selection(index, 100)


@pytest.mark.parametrize('index', [100, 1000, -101])
def test_normalize_integer_selection_out_of_bounds(index):
    with pytest.raises(BoundsCheckError):
        normalize_integer_selection(index, 100)


_FRAMES = (100, 3, 2160, 3840)


@pytest.mark.parametrize('selection, shape, expected', [
    (0, (100,), (0,)),
    (Ellipsis, (100,), (slice(None),)),
    ((Ellipsis, slice(5, 10)), (100,), (slice(5, 10),)),
    ((slice(5, 10), Ellipsis), (100,), (slice(5, 10),)),
    ((-1, 1), (100, 100), (-1, 1)),
    ((0,), (100, 100), (0, slice(None))),
    (slice(None), (100, 100), (slice(None), slice(None))),
    ((0, Ellipsis), _FRAMES, (0, slice(None), slice(None), slice(None))),
    ((0, Ellipsis, 5), _FRAMES, (0, slice(None), slice(None), 5)),
    ((Ellipsis, 7, 1, 2, 3), _FRAMES, (7, 1, 2, 3)),
])
def test_replace_ellipsis(selection, shape, expected):
    assert expected == replace_ellipsis(selection, shape)


@pytest.mark.parametrize('selection', [(Ellipsis, 0, Ellipsis), (0, 0, 0)])
def test_replace_ellipsis_invalid(selection):
    with pytest.raises(IndexError):
        replace_ellipsis(selection, (100, 100))


def _check_projections(shape, chunks, selection):
    """Reassemble a selection chunk by chunk and compare with numpy."""
    a = np.arange(np.prod(shape)).reshape(shape)
    indexer = BasicIndexer(selection, _meta(shape, chunks))
    expect = a[selection]
    assert expect.shape == indexer.shape
    out = np.empty(indexer.shape, dtype=a.dtype)
    visited = []
    for chunk_coords, chunk_selection, out_selection in indexer:
        origin = tuple(i * c for i, c in zip(chunk_coords, chunks))
        region = tuple(slice(o, o + c) for o, c in zip(origin, chunks))
        chunk = a[region]
        out[out_selection] = chunk[chunk_selection]
        visited.append(chunk_coords)
    np.testing.assert_array_equal(expect, out)
    return visited


def test_basic_indexer_1d():
    shape, chunks = (1050,), (100,)
    for selection in [
        Ellipsis,
        slice(None),
        slice(0, 1050),
        slice(0, 1),
        slice(0, 100),
        slice(99, 101),
        slice(1000, 1050),
        slice(1000, 2000),
        slice(-150, -50),
        slice(10, 1000, 3),
        slice(0, 1050, 100),
        slice(50, 50),
        42,
        -1,
    ]:
        _check_projections(shape, chunks, selection)


def test_basic_indexer_2d():
    shape, chunks = (1000, 10), (300, 3)
    for selection in [
        Ellipsis,
        (slice(None), slice(None)),
        (42, slice(None)),
        (slice(None), 4),
        (slice(250, 350), slice(2, 8)),
        (slice(1, 999, 7), slice(None, None, 4)),
        (-1, -1),
    ]:
        _check_projections(shape, chunks, selection)


def test_basic_indexer_visits_only_intersecting_chunks():
    shape = (100, 3, 2160, 3840)
    chunks = (1, 3, 960, 960)
    indexer = BasicIndexer((0, slice(None), slice(500, 1460), slice(1000, 1960)),
                           _meta(shape, chunks))
    assert (3, 960, 960) == indexer.shape
    visited = sorted(p.chunk_coords for p in indexer)
    assert [(0, 0, 0, 1), (0, 0, 0, 2), (0, 0, 1, 1), (0, 0, 1, 2)] == visited


def test_basic_indexer_edge_chunk():
    # the edge chunk holds only 50 in-bounds elements
    indexer = BasicIndexer(slice(None), _meta((150,), (100,)))
    projections = list(indexer)
    assert 2 == len(projections)
    assert (1,) == projections[1].chunk_coords
    assert (slice(0, 50, 1),) == projections[1].chunk_selection
    assert (slice(100, 150),) == projections[1].out_selection


def test_basic_indexer_errors():
    meta = _meta((100, 100), (10, 10))
    with pytest.raises(NegativeStepError):
        BasicIndexer(slice(None, None, -1), meta)
    with pytest.raises(BoundsCheckError):
        BasicIndexer((100, 0), meta)
    with pytest.raises(IndexError):
        BasicIndexer((0, 0, 0), meta)
    with pytest.raises(IndexError):
        BasicIndexer(([0, 1], 0), meta)
    with pytest.raises(IndexError):
        BasicIndexer('foo', meta)


def test_normalize_slice_spec():
    assert ((0, slice(None), slice(500, 1460), slice(1000, 1960)) ==
            normalize_slice_spec([0, None, (500, 1460), (1000, 1960)]))
    assert (slice(0, 10, 2),) == normalize_slice_spec([(0, 10, 2)])
    assert (Ellipsis,) == normalize_slice_spec(None)
    assert (5,) == normalize_slice_spec(5)
    assert (Ellipsis, 3) == normalize_slice_spec((Ellipsis, 3))
    assert (slice(1, 2),) == normalize_slice_spec([slice(1, 2)])
    with pytest.raises(IndexError):
        normalize_slice_spec(['foo'])
    with pytest.raises(IndexError):
        normalize_slice_spec([(1,)])


def test_parse_selection():
    assert ((0, slice(None), slice(500, 1460), slice(1000, 1960)) ==
            parse_selection('0,:,500:1460,1000:1960'))
    assert (Ellipsis, 3) == parse_selection('..., 3')
    assert (slice(None, 10, 2),) == parse_selection(':10:2')
    assert (-1,) == parse_selection('-1')
    with pytest.raises(ValueError):
        parse_selection('1:2:3:4')
    with pytest.raises(ValueError):
        parse_selection('0,,1')
    with pytest.raises(ValueError):
        parse_selection('foo')
