import pytest

import chunkarr
from chunkarr.config import BadConfigError, config, parse_max_workers
from chunkarr.storage import MemoryStore


def test_config_defaults_set():
    assert config.defaults == [
        {
            "array": {
                "compressor": {"id": "lz4", "acceleration": 1},
                "shuffle": False,
                "dimension_separator": ".",
                "write_empty_chunks": True,
                "tolerate_decode_errors": False,
            },
            "threading": {"max_workers": None},
            "json_indent": 4,
        }
    ]
    assert config.get("array.shuffle") is False
    assert config.get("threading.max_workers") is None
    assert config.get("json_indent") == 4


def test_config_set_context_manager():
    with config.set({"array.write_empty_chunks": False}):
        z = chunkarr.zeros(10, chunks=5, dtype="i4")
        assert not z.write_empty_chunks
    z = chunkarr.zeros(10, chunks=5, dtype="i4")
    assert z.write_empty_chunks


def test_config_from_environment(monkeypatch):
    monkeypatch.setenv("CHUNKARR_THREADING__MAX_WORKERS", "3")
    monkeypatch.setenv("CHUNKARR_ARRAY__DIMENSION_SEPARATOR", "/")
    config.refresh()
    assert config.get("threading.max_workers") == 3
    z = chunkarr.zeros((10, 10), chunks=(5, 5), dtype="u1")
    assert 3 == z.max_workers
    assert "/" == z.dimension_separator


def test_config_reset():
    config.set({"array.shuffle": True})
    assert config.get("array.shuffle") is True
    config.reset()
    assert config.get("array.shuffle") is False


def test_config_shuffle():
    with config.set({"array.shuffle": True}):
        z = chunkarr.zeros(100, chunks=10, dtype="i2")
    assert ["shuffle"] == [f.codec_id for f in z.filters]
    assert 2 == z.filters[0].elementsize
    # an explicit argument wins over the configuration
    with config.set({"array.shuffle": True}):
        z = chunkarr.zeros(100, chunks=10, dtype="i2", shuffle=False)
    assert [] == z.filters


def test_config_json_indent():
    store = MemoryStore()
    with config.set({"json_indent": 2}):
        chunkarr.zeros(10, chunks=5, store=store)
    assert b'\n  "chunks"' in store[".carray"]


@pytest.mark.parametrize("value, expected", [(None, None), (1, 1), ("8", 8), (8.0, 8)])
def test_parse_max_workers(value, expected):
    assert expected == parse_max_workers(value)


@pytest.mark.parametrize("value", [0, -1, "foo", [1]])
def test_parse_max_workers_invalid(value):
    with pytest.raises(BadConfigError):
        parse_max_workers(value)
    # still a ValueError for callers catching the broad error
    with pytest.raises(ValueError):
        parse_max_workers(value)


def test_bad_max_workers_in_config():
    with config.set({"threading.max_workers": 0}):
        with pytest.raises(BadConfigError):
            chunkarr.zeros(10, chunks=5)
