import pytest
from unittest.mock import patch, MagicMock
from buildfix.builds import (
    check_dockerfile,
    describe_build,
    enable_apis,
    fetch_build_log,
    list_builds,
    retry_build,
    save_build_log,
    stream_build_log,
)
from buildfix.errors import ExternalCallFailure


def completed(stdout="", returncode=0, stderr=""):
    result = MagicMock()
    result.stdout = stdout
    result.stderr = stderr
    result.returncode = returncode
    return result


class TestBuildQueries:
    """Tests for the Cloud Build helpers"""

    @patch('buildfix.gcloud.subprocess.run')
    def test_list_builds_success(self, mock_run):
        """Test list_builds parses gcloud JSON output"""
        mock_run.return_value = completed(
            '[{"id": "b1", "status": "FAILURE", "createTime": "2024-01-01T00:00:00Z"}]'
        )

        result = list_builds("my-project", limit=3)

        assert result[0]["id"] == "b1"
        mock_run.assert_called_once_with(
            ["gcloud", "builds", "list", "--project=my-project", "--limit=3", "--format=json"],
            capture_output=True,
            text=True
        )

    @patch('buildfix.gcloud.subprocess.run')
    def test_list_builds_empty(self, mock_run):
        mock_run.return_value = completed("")

        assert list_builds("my-project") == []

    @patch('buildfix.gcloud.subprocess.run')
    def test_list_builds_failure(self, mock_run):
        mock_run.return_value = completed(returncode=1, stderr="API not enabled")

        with pytest.raises(ExternalCallFailure):
            list_builds("my-project")

    @patch('buildfix.gcloud.subprocess.run')
    def test_fetch_build_log(self, mock_run):
        mock_run.return_value = completed("Step #0: PERMISSION_DENIED\n")

        assert fetch_build_log("my-project", "b1") == "Step #0: PERMISSION_DENIED\n"
        assert mock_run.call_args[0][0] == ["gcloud", "builds", "log", "b1", "--project=my-project"]

    @patch('buildfix.gcloud.subprocess.run')
    def test_describe_build_parses_yaml(self, mock_run):
        mock_run.return_value = completed(
            "id: b1\n"
            "status: FAILURE\n"
            "failureInfo:\n"
            "  type: USER_BUILD_STEP\n"
            "  detail: Build step failure\n"
        )

        described = describe_build("my-project", "b1")

        assert described["status"] == "FAILURE"
        assert described["failureInfo"]["detail"] == "Build step failure"

    @patch('buildfix.gcloud.subprocess.run')
    def test_describe_build_empty(self, mock_run):
        mock_run.return_value = completed("")

        assert describe_build("my-project", "b1") == {}

    @patch('buildfix.gcloud.subprocess.run')
    def test_retry_build(self, mock_run):
        mock_run.return_value = completed("Created build b2\n")

        assert retry_build("my-project", "b1") == "Created build b2"

    @patch('buildfix.builds.subprocess.run')
    def test_stream_build_log_is_not_captured(self, mock_run):
        mock_run.return_value = completed(returncode=0)

        assert stream_build_log("my-project", "b1") == 0
        mock_run.assert_called_once_with(
            ["gcloud", "builds", "log", "--stream", "b1", "--project=my-project"]
        )

    @patch('buildfix.gcloud.subprocess.run')
    def test_enable_apis(self, mock_run):
        mock_run.return_value = completed()

        enable_apis("my-project")

        args = mock_run.call_args[0][0]
        assert args[:3] == ["gcloud", "services", "enable"]
        assert "securitycenter.googleapis.com" in args
        assert "cloudresourcemanager.googleapis.com" in args
        assert args[-1] == "--project=my-project"


class TestLocalFiles:
    """Dockerfile check and log cache"""

    def test_check_dockerfile_present(self, tmp_path):
        (tmp_path / "Dockerfile").write_text("FROM python:3.12\n")

        assert check_dockerfile(str(tmp_path)) is True

    def test_check_dockerfile_missing(self, tmp_path):
        assert check_dockerfile(str(tmp_path)) is False

    def test_save_build_log(self, tmp_path):
        path = save_build_log("b1", "log text", str(tmp_path))

        assert path.endswith("cloudbuild-b1.log")
        assert (tmp_path / "cloudbuild-b1.log").read_text() == "log text"
