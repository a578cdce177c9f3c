import argparse
import io
import typing

import pytest

from sniffproxy import exceptions
from sniffproxy import optmanager


class TO(optmanager.OptManager):
    def __init__(self):
        super().__init__()
        self.add_option("one", typing.Optional[str], None, "help")
        self.add_option("two", str, "dtwo", "help")
        self.add_option("bool", bool, False, "help")


class TD(optmanager.OptManager):
    def __init__(self):
        super().__init__()
        self.add_option("one", str, "done", "help")
        self.add_option("two", str, "dtwo", "help")
        self.add_option("mode", str, "raw", "help", choices=("raw", "json"))
        self.add_option("maybe", typing.Optional[str], None, "help")


def test_options():
    o = TO()
    assert o.keys() == {"bool", "one", "two"}
    assert "bool" in o
    assert "nonexistent" not in o

    assert o.one is None
    assert o.two == "dtwo"
    o.one = "xone"
    assert o.one == "xone"

    with pytest.raises(KeyError, match="Unknown options"):
        o.nonexistent = "value"
    with pytest.raises(KeyError, match="Unknown options"):
        o.update(nonexistent="value")
    with pytest.raises(AttributeError, match="No such option"):
        o.nonexistent


def test_types():
    o = TO()
    with pytest.raises(TypeError):
        o.one = 5
    with pytest.raises(TypeError):
        o.two = None
    with pytest.raises(TypeError):
        o.bool = "yes"
    o.one = None


def test_update_is_atomic():
    o = TO()
    with pytest.raises(TypeError):
        o.update(one="foo", two=5)
    assert o.one is None
    assert o.two == "dtwo"


def test_choices():
    o = TD()
    o.mode = "json"
    with pytest.raises(exceptions.OptionsError, match="Valid values are raw, json"):
        o.mode = "xml"
    assert o.mode == "json"


def test_subscribe():
    o = TO()
    rec = []

    def sub(opts, updated):
        rec.append((opts.one, updated))

    o.subscribe(sub, ["one"])
    o.one = "90"
    assert rec == [("90", {"one"})]
    o.two = "three"
    assert len(rec) == 1
    o.update(one="four", two="five")
    assert rec[-1] == ("four", {"one", "two"})

    with pytest.raises(exceptions.OptionsError, match="No such option"):
        o.subscribe(sub, ["nonexistent"])


def test_no_notification_on_failed_update():
    o = TO()
    rec = []
    o.subscribe(lambda *args: rec.append(args), ["one"])
    with pytest.raises(TypeError):
        o.one = 5
    assert rec == []


def test_toggler():
    o = TO()
    f = o.toggler("bool")
    assert o.bool is False
    f()
    assert o.bool is True
    f()
    assert o.bool is False
    with pytest.raises(ValueError, match="boolean options"):
        o.toggler("one")
    with pytest.raises(KeyError, match="No such option"):
        o.toggler("nonexistent")


def test_set():
    o = TO()
    o.set("one=5", "bool")
    assert o.one == "5"
    assert o.bool is True
    o.set("bool=false")
    assert o.bool is False
    o.set("bool=toggle")
    assert o.bool is True
    o.set("one")
    assert o.one is None

    with pytest.raises(exceptions.OptionsError, match="Option is required"):
        o.set("two")
    with pytest.raises(exceptions.OptionsError, match="Boolean must be"):
        o.set("bool=maybe")
    with pytest.raises(exceptions.OptionsError, match="Unknown option"):
        o.set("nonexistent=1")


def test_set_str():
    o = TD()
    o.set("one=foo=bar")
    assert o.one == "foo=bar"
    o.set("maybe")
    assert o.maybe is None
    with pytest.raises(exceptions.OptionsError, match="Invalid value"):
        o.set("mode=xml")


def test_make_parser():
    parser = argparse.ArgumentParser()
    o = TO()
    o.make_parser(parser, "bool", short="b")
    o.make_parser(parser, "one", metavar="ONE")
    o.make_parser(parser, "nonexistent")

    args = parser.parse_args([])
    assert args.bool is None
    assert args.one is None
    args = parser.parse_args(["-b", "--one", "3"])
    assert args.bool is True
    assert args.one == "3"
    assert parser.parse_args(["--no-bool"]).bool is False


def test_make_parser_choices():
    parser = argparse.ArgumentParser()
    o = TD()
    o.make_parser(parser, "mode")
    assert parser.parse_args(["--mode", "json"]).mode == "json"
    with pytest.raises(SystemExit):
        parser.parse_args(["--mode", "xml"])


def test_load():
    o = TO()
    optmanager.load(o, "one: foo")
    assert o.one == "foo"
    optmanager.load(o, "")
    assert o.one == "foo"
    optmanager.load(o, "# just a comment")
    assert o.one == "foo"

    with pytest.raises(exceptions.OptionsError, match="Unknown options"):
        optmanager.load(o, "nonexistent: 1")
    with pytest.raises(exceptions.OptionsError, match="Expected"):
        optmanager.load(o, "one: 1")
    with pytest.raises(exceptions.OptionsError, match="Config error at line"):
        optmanager.load(o, "one: [")
    with pytest.raises(exceptions.OptionsError, match="no keys found"):
        optmanager.load(o, "foo")


def test_load_paths(tmp_path):
    o = TO()
    first = tmp_path / "first.yaml"
    first.write_text("one: first\ntwo: first\n")
    second = tmp_path / "second.yaml"
    second.write_text("two: second\nbool: true\n")

    optmanager.load_paths(o, first, second, tmp_path / "nonexistent.yaml")
    assert o.one == "first"
    assert o.two == "second"
    assert o.bool is True

    broken = tmp_path / "broken.yaml"
    broken.write_text("one: 1")
    with pytest.raises(exceptions.OptionsError, match="Error reading"):
        optmanager.load_paths(o, broken)

    binary = tmp_path / "binary.yaml"
    binary.write_bytes(b"\xff\xfe\x00")
    with pytest.raises(exceptions.OptionsError, match="Error reading"):
        optmanager.load_paths(o, binary)


def test_dump_defaults():
    o = TD()
    buf = io.StringIO()
    optmanager.dump_defaults(o, buf)
    out = buf.getvalue()
    assert "one: done" in out
    assert "Type str." in out
    assert "Type optional str." in out
    assert "Valid values are 'raw', 'json'." in out
    assert optmanager.parse(out) == {
        "one": "done",
        "two": "dtwo",
        "mode": "raw",
        "maybe": None,
    }
