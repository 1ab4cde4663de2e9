import pytest
from unittest.mock import patch, MagicMock
from buildfix import revert

SA = "123456789@cloudbuild.gserviceaccount.com"


@pytest.fixture
def audit_file(tmp_path):
    path = tmp_path / "applied-roles-b1.txt"
    path.write_text(f"Applied roles for {SA}\n  - roles/storage.admin: applied\n")
    return str(path)


@pytest.fixture(autouse=True)
def gcloud_present():
    with patch('buildfix.revert.require_gcloud'):
        yield


class TestRevertCli:
    """Command line wrapper around the revoker"""

    def test_file_is_required(self):
        with pytest.raises(SystemExit):
            revert.main([], resolver=lambda: "p")

    def test_yes_removes_bound_roles(self, audit_file, tmp_path, capsys):
        with patch('buildfix.revoker.iam.is_role_bound', return_value=True), \
             patch('buildfix.revoker.iam.remove_role_binding') as mock_remove:
            code = revert.main(["-f", audit_file, "-p", "p", "--yes", "--log-dir", str(tmp_path)])

        assert code == 0
        mock_remove.assert_called_once_with("p", SA, "roles/storage.admin")
        assert list(tmp_path.glob("reverted-roles-*.txt"))
        assert "Removed: 1" in capsys.readouterr().out

    def test_dry_run(self, audit_file, tmp_path):
        with patch('buildfix.revoker.iam.is_role_bound', return_value=True), \
             patch('buildfix.revoker.iam.remove_role_binding') as mock_remove:
            code = revert.main(["-f", audit_file, "-p", "p", "--dry-run", "--log-dir", str(tmp_path)])

        assert code == 0
        mock_remove.assert_not_called()

    def test_declined(self, audit_file, tmp_path):
        confirm = MagicMock(return_value=False)

        with patch('buildfix.revoker.iam.remove_role_binding') as mock_remove:
            code = revert.main(["-f", audit_file, "-p", "p", "--log-dir", str(tmp_path)],
                               confirm=confirm)

        assert code == 0
        mock_remove.assert_not_called()

    def test_malformed_record_exits_one(self, tmp_path, capsys):
        path = tmp_path / "bad.txt"
        path.write_text("nothing useful here\n")

        code = revert.main(["-f", str(path), "-p", "p", "--yes", "--log-dir", str(tmp_path)])

        assert code == 1
        assert "Error:" in capsys.readouterr().err

    def test_missing_file_exits_one(self, tmp_path):
        code = revert.main(["-f", str(tmp_path / "gone.txt"), "-p", "p", "--yes"])

        assert code == 1

    def test_no_roles_exits_one(self, tmp_path):
        path = tmp_path / "empty.txt"
        path.write_text(f"Applied roles for {SA}\n")

        code = revert.main(["-f", str(path), "-p", "p", "--yes", "--log-dir", str(tmp_path)])

        assert code == 1

    def test_no_project_exits_one(self, audit_file):
        code = revert.main(["-f", audit_file], resolver=lambda: "")

        assert code == 1

    def test_missing_gcloud_exits_two(self, audit_file):
        with patch('buildfix.revert.require_gcloud',
                   side_effect=revert.MissingDependency("gcloud CLI not found")):
            code = revert.main(["-f", audit_file, "-p", "p"])

        assert code == 2

    def test_unreadable_file_exits_one(self, audit_file, tmp_path, capsys):
        with patch('buildfix.revoker.open', side_effect=PermissionError("denied"), create=True):
            code = revert.main(["-f", audit_file, "-p", "p", "--yes", "--log-dir", str(tmp_path)])

        assert code == 1
        assert "could not read audit record" in capsys.readouterr().err
