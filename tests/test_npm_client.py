"""Tests for the npm/node subprocess wrapper."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest
import requests

from errors import InstallError
from npm.client import NpmClient


def _result(returncode=0, stdout=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr="")


@pytest.fixture(autouse=True)
def _registry_env(monkeypatch):
    monkeypatch.setenv("NPM_CONFIG_REGISTRY", "https://registry.example.test/")


class TestInstall:
    @patch("npm.client.subprocess.run")
    def test_offline_success(self, mock_run, tmp_path):
        mock_run.return_value = _result(0)
        NpmClient().install(str(tmp_path))
        assert mock_run.call_count == 1
        argv = mock_run.call_args[0][0]
        assert argv == ["npm", "install", "--ignore-scripts", "--offline"]
        assert mock_run.call_args.kwargs["cwd"] == str(tmp_path)

    @patch("npm.client.subprocess.run")
    def test_network_retry(self, mock_run, tmp_path):
        mock_run.side_effect = [_result(1), _result(0)]
        NpmClient().install(str(tmp_path), run_postinstall=True)
        assert mock_run.call_count == 2
        assert mock_run.call_args_list[1][0][0] == ["npm", "install", "--prefer-offline"]

    @patch("npm.client.subprocess.run")
    def test_both_fail(self, mock_run, tmp_path):
        mock_run.return_value = _result(1)
        with pytest.raises(InstallError) as exc:
            NpmClient().install(str(tmp_path), package="cowsay")
        assert "cowsay" in str(exc.value)

    @patch("npm.client.subprocess.run", side_effect=OSError("no npm"))
    def test_missing_npm(self, _mock_run, tmp_path):
        with pytest.raises(InstallError):
            NpmClient().install(str(tmp_path))

    @patch("npm.client.subprocess.run")
    def test_single_package_not_saved(self, mock_run, tmp_path):
        mock_run.return_value = _result(0)
        NpmClient().install(str(tmp_path), package="cowsay@1.5.0")
        argv = mock_run.call_args[0][0]
        assert argv[:4] == ["npm", "install", "cowsay@1.5.0", "--no-save"]

    def test_install_env_keeps_configured_registry(self):
        env = NpmClient().install_env()
        assert env["NPM_CONFIG_REGISTRY"] == "https://registry.example.test/"


class TestViewVersion:
    @patch("npm.client.subprocess.run")
    def test_npm_answers(self, mock_run):
        mock_run.return_value = _result(0, "7.6.0\n")
        assert NpmClient().view_version("semver") == "7.6.0"

    @patch("npm.client.subprocess.run")
    def test_range_output_takes_last(self, mock_run):
        mock_run.return_value = _result(0, "semver@7.5.0 '7.5.0'\nsemver@7.6.0 '7.6.0'\n")
        assert NpmClient().view_version("semver", "^7") == "7.6.0"

    @patch("npm.client.requests.get")
    @patch("npm.client.subprocess.run")
    def test_registry_fallback(self, mock_run, mock_get):
        mock_run.return_value = _result(1)
        response = MagicMock(status_code=200)
        response.json.return_value = {"dist-tags": {"latest": "7.6.0"}}
        mock_get.return_value = response

        assert NpmClient().view_version("@scope/pkg") == "7.6.0"
        assert mock_get.call_args[0][0] == "https://registry.example.test/@scope%2Fpkg"

    @patch("npm.client.requests.get", side_effect=requests.ConnectionError("offline"))
    @patch("npm.client.subprocess.run", side_effect=subprocess.TimeoutExpired("npm", 60))
    def test_nothing_answers(self, _mock_run, _mock_get):
        assert NpmClient().view_version("semver") is None


class TestNodeVersion:
    @patch("npm.client.subprocess.run")
    def test_strips_prefix_and_caches(self, mock_run):
        mock_run.return_value = _result(0, "v20.11.1\n")
        client = NpmClient()
        assert client.node_version() == "20.11.1"
        assert client.node_version() == "20.11.1"
        assert mock_run.call_count == 1

    @patch("npm.client.subprocess.run", side_effect=FileNotFoundError("node"))
    def test_missing_node(self, _mock_run):
        assert NpmClient().node_version() is None
