import json

from engine.cache_utils import atomic_write_json, read_json_dict


def test_atomic_write_creates_parent(tmp_path):
    path = tmp_path / "a" / "b" / "data.json"
    atomic_write_json(path, {"k": [1, 2]})
    assert json.loads(path.read_text()) == {"k": [1, 2]}
    assert list(path.parent.glob("*.tmp")) == []


def test_read_json_dict_tolerates_bad_files(tmp_path):
    assert read_json_dict(tmp_path / "missing.json") == {}

    corrupt = tmp_path / "corrupt.json"
    corrupt.write_text("{oops")
    assert read_json_dict(corrupt) == {}

    not_a_dict = tmp_path / "list.json"
    not_a_dict.write_text("[1, 2]")
    assert read_json_dict(not_a_dict) == {}
