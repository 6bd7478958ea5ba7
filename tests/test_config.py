#!/usr/bin/env python3

import argparse
import sys
from argparse import ArgumentTypeError

import pytest

import wikicore.config
from wikicore.config import WikiConfig


@pytest.fixture(autouse=True)
def config_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(wikicore.config, "CONFIG_DIR", tmp_path)
    return tmp_path


class test_argtype_config:

    @pytest.mark.parametrize("string", [wikicore.config.DEFAULT_CONF, "wiki", "wiki.example.org", "hello-world.py"])
    def test_configuration_name(self, config_dir, string):
        config = config_dir / (string + ".conf")
        config.touch()
        path = wikicore.config.argtype_config(string)
        assert path == str(config)

    def test_default_fallback(self):
        path = wikicore.config.argtype_config(wikicore.config.DEFAULT_CONF)
        assert path is None

    @pytest.mark.parametrize("string", [wikicore.config.DEFAULT_CONF, "wiki", "wiki.example.org", "hello-world.py"])
    def test_path_with_slashes_but_without_conf_suffix(self, tmp_path, string):
        config = tmp_path / string
        with pytest.raises(ArgumentTypeError) as excinfo:
            path = wikicore.config.argtype_config(config)
        msg = "config filename must end with '.conf' suffix"
        assert msg in str(excinfo.value)

    def test_existing_file(self, tmp_path):
        config = tmp_path / "wiki.conf"
        config.touch()
        path = wikicore.config.argtype_config(config)
        assert path == str(config)

    def test_nonexisting_file(self, tmp_path):
        config = tmp_path / "helloworld.conf"
        with pytest.raises(ArgumentTypeError) as excinfo:
            path = wikicore.config.argtype_config(config)
        msg = "file does not exist"
        assert msg in str(excinfo.value)


@pytest.fixture
def cfp(tmp_path):
    data = """
    [DEFAULT]
    default_opt1 = value1
    default_opt2 =  value2

    [section1]
    sec1_opt1 = value3
    sec1_opt2 = value4

    [section2]
    multi-value = [
        "config.py",
        "hello-world.conf",
        "/file/path/with spaces,and, commas"
        ]

    [section3]
    a = spam

    [section4]
    base = /srv/wiki
    path = ${base}/data
    """
    configfile = tmp_path / "config.conf"
    with open(configfile, "w") as f:
        f.write(data)
    return wikicore.config.ConfigParser(configfile)

class test_fetch_section:
    """Tests for 'ConfigParser.fetch_section()' method."""

    def test_existent_section(self, cfp):
        values = cfp.fetch_section(section="section1")
        result = ["--default_opt1", "value1", "--default_opt2", "value2",
                  "--sec1_opt1", "value3", "--sec1_opt2", "value4"]
        assert values == result

    def test_section_not_specified(self, cfp):
        values = cfp.fetch_section()
        result = ["--default_opt1", "value1", "--default_opt2", "value2"]
        assert values == result

    def test_multiline_value(self, cfp):
        values = cfp.fetch_section(section="section2")
        result = ["--default_opt1", "value1", "--default_opt2", "value2",
                  "--multi-value", "config.py", "hello-world.conf", "/file/path/with spaces,and, commas"]
        assert values == result

    def test_to_dict(self, cfp):
        values = cfp.fetch_section(to_list=False)
        result = {"default_opt1": "value1", "default_opt2": "value2"}
        assert values == result

    def test_short_option_in_config_file(self, cfp):
        with pytest.raises(ArgumentTypeError) as excinfo:
            values = cfp.fetch_section(section="section3")
        msg = "short options are not allowed in a config file: 'a'"
        assert msg == str(excinfo.value)

    def test_interpolation(self, cfp):
        values = cfp.fetch_section(section="section4", to_list=False)
        assert values["path"] == "/srv/wiki/data"


class obj_simple:
    def __init__(self, foo, bar):
        self.foo = foo
        self.bar = bar

    @staticmethod
    def set_argparser(argparser):
        argparser.add_argument("--foo", required=True, choices=["a", "b"])
        argparser.add_argument("--bar", default="baz")

    @classmethod
    def from_argparser(klass, args):
        return klass(args.foo, args.bar)

class test_object_from_argparser:
    """Tests for the :py:func:`wikicore.config.object_from_argparser` function."""

    def test_undefined(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            wikicore.config.object_from_argparser(obj_simple, argv=[])
        assert excinfo.value.code == 2
        assert "error: the following arguments are required: --foo" in capsys.readouterr().err

    def test_defined_on_cli(self):
        obj = wikicore.config.object_from_argparser(obj_simple, argv=["--foo", "a"])
        assert obj.foo == "a"

    def test_sys_argv(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["prog", "--foo", "b"])
        obj = wikicore.config.object_from_argparser(obj_simple)
        assert obj.foo == "b"

    def test_defined_in_config(self, tmp_path):
        config = tmp_path / "default.conf"
        with open(config, "w") as f:
            f.write("[DEFAULT]\nfoo = a\n")
        obj = wikicore.config.object_from_argparser(obj_simple, argv=["--config", str(config)])
        assert obj.foo == "a"

    def test_default_config_is_read(self, config_dir):
        with open(config_dir / "default.conf", "w") as f:
            f.write("[DEFAULT]\nfoo = a\nbar = c\n")
        obj = wikicore.config.object_from_argparser(obj_simple, argv=[])
        assert obj.foo == "a"
        assert obj.bar == "c"

    def test_config_section(self, tmp_path):
        config = tmp_path / "default.conf"
        with open(config, "w") as f:
            f.write("[DEFAULT]\nfoo = a\n[script]\nbar = qux\n")
        obj = wikicore.config.object_from_argparser(obj_simple, section="script", argv=["--config", str(config)])
        assert obj.bar == "qux"

    def test_defined_in_both(self, tmp_path):
        config = tmp_path / "default.conf"
        with open(config, "w") as f:
            f.write("[DEFAULT]\nfoo = a\n")
        obj = wikicore.config.object_from_argparser(obj_simple, argv=["--foo", "b", "--config", str(config)])
        assert obj.foo == "b"

    def test_unknown_config_argument(self, tmp_path):
        config = tmp_path / "default.conf"
        with open(config, "w") as f:
            f.write("[DEFAULT]\nunknown = value\n")
        obj = wikicore.config.object_from_argparser(obj_simple, argv=["--foo", "a", "--config", str(config)])
        assert obj.foo == "a"

    @pytest.mark.parametrize("argv, unknown", [
        (["--foo", "a", "--unknown", "value"], "--unknown"),
        (["--foo", "a", "-u", "value"], "-u"),
        (["--foo", "a", "--unknown", "-u", "value"], "--unknown -u"),
    ])
    def test_unknown_command_line_argument(self, capsys, argv, unknown):
        with pytest.raises(SystemExit) as excinfo:
            wikicore.config.object_from_argparser(obj_simple, argv=argv)
        assert excinfo.value.code == 2
        assert f"error: unrecognized arguments: {unknown}" in capsys.readouterr().err

    def test_no_config(self, config_dir):
        with open(config_dir / "default.conf", "w") as f:
            f.write("[DEFAULT]\nfoo = a\nbar = c\n")
        obj = wikicore.config.object_from_argparser(obj_simple, argv=["--foo", "b", "--no-config"])
        assert obj.bar == "baz"

    def test_no_config_side_by_side_with_config(self, tmp_path, capsys):
        config = tmp_path / "default.conf"
        with open(config, "w") as f:
            f.write("[DEFAULT]\nfoo = a\nbar = c\n")
        with pytest.raises(SystemExit) as excinfo:
            wikicore.config.object_from_argparser(obj_simple, argv=["--foo", "b", "--no-config", "--config", str(config)])
        assert excinfo.value.code == 2
        assert "error: argument -c/--config: not allowed with argument --no-config" in capsys.readouterr().err


class test_wiki_config:
    def test_defaults(self):
        config = WikiConfig()
        assert config.default_namespace == "Wiki"
        assert config.reserved_namespaces == ["Special", "System"]

    @pytest.mark.parametrize("namespace", ["Category", "category", "File", "Talk", "Special", "SYSTEM"])
    def test_reserved(self, namespace):
        assert WikiConfig().is_reserved(namespace) is True

    @pytest.mark.parametrize("namespace", ["Wiki", "Help", "Transclusion"])
    def test_not_reserved(self, namespace):
        assert WikiConfig().is_reserved(namespace) is False

    def test_custom_reserved(self):
        config = WikiConfig(reserved_namespaces=["Admin"])
        assert config.is_reserved("Admin") is True
        assert config.is_reserved("Special") is False
        assert config.is_reserved("Category") is True

    def test_no_additional_reserved(self):
        config = WikiConfig(reserved_namespaces=[])
        assert config.is_reserved("Special") is False
        assert config.is_reserved("Talk") is True
        assert config.is_reserved("File") is True

    def test_empty_default_namespace(self):
        with pytest.raises(ValueError):
            WikiConfig(default_namespace=" ")

    def test_from_argparser(self):
        config = wikicore.config.object_from_argparser(WikiConfig, argv=[
            "--wiki-site-name", "My Wiki",
            "--wiki-default-namespace", "Main",
            "--wiki-reserved-namespaces", "Admin", "Special",
        ])
        assert config.site_name == "My Wiki"
        assert config.default_namespace == "Main"
        assert config.category_namespace == "Category"
        assert config.reserved_namespaces == ["Admin", "Special"]

    def test_from_config_file(self, tmp_path):
        config = tmp_path / "default.conf"
        with open(config, "w") as f:
            f.write('[DEFAULT]\nwiki-site-name = Config Wiki\nwiki-reserved-namespaces = ["Admin"]\n')
        result = wikicore.config.object_from_argparser(WikiConfig, argv=["--config", str(config)])
        assert result.site_name == "Config Wiki"
        assert result.reserved_namespaces == ["Admin"]
