"""Tests for nhx command-line splitting and parsing."""

from args import parse_args, split_argv, split_rest


class TestParseArgs:
    def test_local_script(self):
        ns = parse_args(["./script.js", "a", "b"])
        assert ns.TARGET == "./script.js"
        assert ns.SCRIPT_ARGS == ["a", "b"]
        assert ns.NODE_ARGS == []
        assert ns.WITH_DEPS == []

    def test_with_repeatable(self):
        ns = parse_args(["--with=semver", "--with", "lodash@4", "-e", "1"])
        assert ns.WITH_DEPS == ["semver", "lodash@4"]
        assert ns.NODE_ARGS == ["-e", "1"]
        assert ns.TARGET is None

    def test_flags_after_target_belong_to_script(self):
        ns = parse_args(["./s.js", "--with=semver", "--help"])
        assert ns.WITH_DEPS == []
        assert ns.HELP is False
        assert ns.SCRIPT_ARGS == ["--with=semver", "--help"]

    def test_node_flags_before_target(self):
        ns = parse_args(["--with=tsx", "--import", "tsx", "./a.ts", "x"])
        assert ns.NODE_ARGS == ["--import", "tsx"]
        assert ns.TARGET == "./a.ts"
        assert ns.SCRIPT_ARGS == ["x"]

    def test_node_flag_with_equals(self):
        ns = parse_args(["--inspect=9229", "./a.js"])
        assert ns.NODE_ARGS == ["--inspect=9229"]
        assert ns.TARGET == "./a.js"

    def test_path_not_taken_as_flag_value(self):
        ns = parse_args(["--trace-warnings", "./a.js"])
        assert ns.NODE_ARGS == ["--trace-warnings"]
        assert ns.TARGET == "./a.js"

    def test_stdin_target(self):
        ns = parse_args(["--with=semver", "-", "arg"])
        assert ns.TARGET == "-"
        assert ns.SCRIPT_ARGS == ["arg"]

    def test_engine_and_options(self):
        ns = parse_args(["--engine", "node:18", "--run-postinstall", "--loglevel", "debug", "cowsay", "hi"])
        assert ns.ENGINES == ["node:18"]
        assert ns.RUN_POSTINSTALL is True
        assert ns.LOG_LEVEL == "DEBUG"
        assert ns.TARGET == "cowsay"
        assert ns.SCRIPT_ARGS == ["hi"]

    def test_help(self):
        assert parse_args(["-h"]).HELP is True

    def test_empty(self):
        ns = parse_args([])
        assert ns.TARGET is None
        assert ns.NODE_ARGS == []
        assert ns.SCRIPT_ARGS == []


class TestSplitting:
    def test_split_argv(self):
        ours, rest = split_argv(["--with", "a", "-p", "x", "--with=b"])
        assert ours == ["--with", "a"]
        assert rest == ["-p", "x", "--with=b"]

    def test_split_rest(self):
        assert split_rest(["-p", "1+1"]) == (["-p", "1+1"], None, [])
        assert split_rest(["cowsay", "-f", "x"]) == ([], "cowsay", ["-f", "x"])
