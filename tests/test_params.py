import datetime

import pytest

from prod_automation.errors import InvalidParams
from prod_automation.params import ParamBag, to_param_value


def test_maps_are_key_sorted_and_scalars_stringified():
    value = to_param_value({"b": 1.5, "a": datetime.date(2024, 1, 2), "c": [True, None]})

    assert list(value) == ["a", "b", "c"]
    assert value == {"a": "2024-01-02", "b": "1.5", "c": [True, None]}


def test_non_string_keys_are_dropped():
    assert to_param_value({1: "x", "name": "y"}) == {"name": "y"}


def test_require_str_reports_missing_parameter():
    bag = ParamBag({"path": ""})

    with pytest.raises(InvalidParams) as excinfo:
        bag.require_str("path")
    assert excinfo.value.detail == "The 'path' parameter was not specified."

    with pytest.raises(InvalidParams):
        ParamBag().require_str("path")


def test_get_str_rejects_wrong_type():
    with pytest.raises(InvalidParams):
        ParamBag({"path": ["a"]}).get_str("path")
    assert ParamBag().get_str("path", "default") == "default"


def test_get_str_or_int_accepts_yaml_octal_ints():
    bag = ParamBag({"permissions": 755, "other": "0644"})
    assert bag.get_str_or_int("permissions") == "755"
    assert bag.get_str_or_int("other") == "0644"
    assert bag.get_str_or_int("missing") is None


@pytest.mark.parametrize(
    "raw, expected",
    [(True, True), ("yes", True), ("On", True), ("1", True), (False, False), ("no", False), ("off", False)],
)
def test_get_bool_accepts_words(raw, expected):
    assert ParamBag({"flag": raw}).get_bool("flag", not expected) is expected


def test_get_bool_rejects_garbage_and_defaults_when_missing():
    with pytest.raises(InvalidParams):
        ParamBag({"flag": "maybe"}).get_bool("flag", False)
    assert ParamBag().get_bool("flag", True) is True


def test_get_int():
    assert ParamBag({"gid": "1001"}).get_int("gid") == 1001
    assert ParamBag({"gid": 7}).get_int("gid") == 7
    with pytest.raises(InvalidParams):
        ParamBag({"gid": True}).get_int("gid")


def test_str_list_promotes_single_string():
    assert ParamBag({"packages": "curl"}).get_str_list("packages") == ["curl"]
    assert ParamBag({"packages": ["curl", "git"]}).get_str_list("packages") == ["curl", "git"]
    assert ParamBag().get_str_list("packages") == []
    with pytest.raises(InvalidParams):
        ParamBag({"packages": [{"name": "curl"}]}).get_str_list("packages")


def test_map_entries_accepts_single_map_or_list():
    single = ParamBag({"replaceLine": {"matchString": "a", "replaceString": "b"}})
    several = ParamBag({"replaceLine": [{"matchString": "a"}, {"matchString": "b"}]})

    assert single.get_map_entries("replaceLine") == [{"matchString": "a", "replaceString": "b"}]
    assert len(several.get_map_entries("replaceLine")) == 2
    with pytest.raises(InvalidParams):
        ParamBag({"replaceLine": ["a"]}).get_map_entries("replaceLine")


def test_has_treats_null_as_unset():
    bag = ParamBag({"owner": None, "group": "staff"})
    assert not bag.has("owner")
    assert "group" in bag
    assert len(bag) == 2
