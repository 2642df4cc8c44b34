import importlib
import subprocess
from unittest.mock import patch

import shared.build_info as build_info_module


class TestGitShortSha:
    def test_returns_git_output(self):
        with patch("subprocess.check_output", return_value="abc1234\n"):
            assert build_info_module._git_short_sha() == "abc1234"

    def test_dev_when_git_missing(self):
        with patch("subprocess.check_output", side_effect=FileNotFoundError):
            assert build_info_module._git_short_sha() == "dev"

    def test_dev_outside_a_repository(self):
        with patch("subprocess.check_output", side_effect=subprocess.CalledProcessError(128, "git")):
            assert build_info_module._git_short_sha() == "dev"


class TestBuildInfo:
    def test_env_overrides_version_and_commit(self):
        with patch.dict("os.environ", {"APP_VERSION": "1.4.0", "GIT_COMMIT": "feed123"}):
            importlib.reload(build_info_module)
            assert build_info_module.build_info() == {"version": "1.4.0", "commit": "feed123"}
        importlib.reload(build_info_module)

    def test_commit_falls_back_to_git(self, monkeypatch):
        monkeypatch.delenv("GIT_COMMIT", raising=False)
        with patch("subprocess.check_output", return_value="0ddba11\n"):
            importlib.reload(build_info_module)
            assert build_info_module.GIT_COMMIT == "0ddba11"
        importlib.reload(build_info_module)
